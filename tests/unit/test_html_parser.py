from webdna_docs.ingest.parser import (
    extract_source_id,
    parse_glance_page,
    parse_instruction_page,
)

GLANCE_HTML = """
<html><body>
  <div class="card">
    <h5 class="card-title"><i class="icon">db</i><span class="card-title-text"> Database </span></h5>
    <div class="card-text">
      <a href="/database/table">table</a>
      <a href="/database/sql">sql</a>
      <a href="/database/empty"></a>
    </div>
  </div>
  <div class="card">
    <h5 class="card-title"><span class="card-title-text">Math</span></h5>
    <div class="card-text"><a href="https://docs.webdna.us/math/math">math</a></div>
  </div>
  <div class="card">
    <h5 class="card-title"><span class="card-title-text">Orphans</span></h5>
    <p>no links here</p>
  </div>
</body></html>
"""

INSTRUCTION_HTML = """
<html><body>
<article>
  <p>Displays records from a database in a loop.</p>
  <p>Second paragraph.</p>
  <pre><code>no brackets here</code></pre>
  <pre><code>[table name=x]
  ...
[/table]</code></pre>
  <h3>Parameters</h3>
  <ul><li>name - table name</li></ul>
  <p>Required.</p>
  <h3>Examples</h3>
  <pre><code>[table name=people][/table]</code></pre>
  <h3>Related Instructions</h3>
  <ul>
    <li><a href="/database/search">search</a></li>
    <li><a href="/database/sql">sql</a></li>
    <li><a href="/database/sql">sql again</a></li>
  </ul>
  <h3>Notes</h3>
  <p>Nothing else.</p>
</article>
</body></html>
"""


def test_extract_source_id_uses_last_of_two_segments() -> None:
    assert extract_source_id("/database/table") == "table"
    assert extract_source_id("https://docs.webdna.us/date-time/date") == "date"
    assert extract_source_id("table") == "table"


def test_parse_glance_page_groups_links_by_category() -> None:
    categories = parse_glance_page(GLANCE_HTML)

    assert [category.name for category in categories] == ["Database", "Math", "Orphans"]
    database = categories[0]
    assert [link.name for link in database.instructions] == ["table", "sql"]
    assert database.instructions[0].url == "/database/table"
    assert database.instructions[0].webdna_id == "table"
    assert categories[1].instructions[0].webdna_id == "math"
    assert categories[2].instructions == []


def test_parse_instruction_page_extracts_sections() -> None:
    page = parse_instruction_page(INSTRUCTION_HTML)

    assert page.description == "Displays records from a database in a loop."
    assert page.syntax.startswith("[table name=x]")
    assert page.syntax.endswith("[/table]")
    assert page.parameters == "<ul><li>name - table name</li></ul><p>Required.</p>"
    assert page.examples == "<pre><code>[table name=people][/table]</code></pre>"
    assert page.related_source_ids == ["search", "sql"]


def test_parse_instruction_page_tolerates_missing_sections() -> None:
    page = parse_instruction_page("<html><body><h1>Empty</h1></body></html>")

    assert page.description == ""
    assert page.syntax == ""
    assert page.parameters == ""
    assert page.examples == ""
    assert page.related_source_ids == []
