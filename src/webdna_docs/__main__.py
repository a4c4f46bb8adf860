import sys

from webdna_docs.cli import main

sys.exit(main())
