"""Scriptable stand-in worker used by the protocol engine tests.

Tools:
- echo:   replies `{"echo": value}` after `delay` seconds.
- silent: never replies.
- crash:  exits the process immediately with status 3.
- noise:  writes a malformed line, then replies like echo.
"""

import asyncio
import json
import os
import sys


def write(payload: dict) -> None:
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


async def invoke(message: dict) -> None:
    tool = message.get("tool")
    params = message.get("params") or {}
    request_id = message.get("id")

    if tool == "crash":
        os._exit(3)
    if tool == "silent":
        return
    if tool == "noise":
        sys.stdout.write("this is not json\n")
        sys.stdout.flush()
    if tool in ("echo", "noise"):
        await asyncio.sleep(float(params.get("delay", 0)))
        write({"type": "tool_result", "id": request_id, "result": {"echo": params.get("value")}})
        return
    write({"type": "tool_error", "id": request_id, "error": {"message": f"Unknown tool: {tool}", "code": "UNKNOWN_TOOL"}})


async def main() -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    tasks = set()
    while True:
        line = await reader.readline()
        if not line:
            break
        message = json.loads(line)
        kind = message.get("type")
        if kind == "init":
            write({"type": "ready"})
        elif kind == "list_tools":
            write({"type": "tools", "id": message.get("id"), "tools": [{"name": "echo"}]})
        elif kind == "invoke_tool":
            task = asyncio.create_task(invoke(message))
            tasks.add(task)
            task.add_done_callback(tasks.discard)


if __name__ == "__main__":
    asyncio.run(main())
