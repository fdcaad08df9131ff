import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import httpx

from pagegen.blocks import build_block_html


DEFAULT_API_BASE = "http://127.0.0.1:8000"


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def parse_sse_lines(lines: Iterable[str]) -> Iterator[Tuple[str, Any]]:
    """Yield (event, data) pairs from ``event:``/``data:`` framed lines."""
    event = "message"
    data_lines: List[str] = []
    for line in lines:
        if not line:
            if data_lines:
                raw = "\n".join(data_lines)
                try:
                    yield event, json.loads(raw)
                except ValueError:
                    yield event, raw
            event, data_lines = "message", []
            continue
        if line.startswith("event:"):
            event = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:") :].strip())
    if data_lines:
        raw = "\n".join(data_lines)
        try:
            yield event, json.loads(raw)
        except ValueError:
            yield event, raw


def _print_event(event: str, data: Any, show_html: bool = False) -> None:
    if not isinstance(data, dict):
        print(f"[{event}] {data}")
        return
    if event == "reasoning-step":
        print(f"[{data.get('stage')}] {data.get('title')}: {data.get('content')}")
    elif event == "block-start":
        print(f"  block {data.get('index')}: {data.get('blockType')} ...")
    elif event == "block-content":
        print(f"  block {data.get('index')} rendered ({len(data.get('html') or '')} chars)")
        if show_html:
            print(data.get("html") or "")
    elif event == "generation-complete":
        print(f"Done: {data.get('totalBlocks')} blocks in {data.get('duration')}ms (intent: {data.get('intent')})")
        for suggestion in data.get("followUpSuggestions") or []:
            print(f"  next: {suggestion}")
    elif event == "step_complete":
        detail = data.get("result") if data.get("status") == "success" else data.get("error")
        print(f"  step {data.get('stepId')}: {data.get('status')} {str(detail or '')[:120]}")
    elif event == "validation":
        print(f"Validation: {'passed' if data.get('passed') else 'failed'}")
        for issue in data.get("issues") or []:
            print(f"  - {issue}")
    elif event == "error":
        print(f"Error: {data.get('message')}")
    else:
        print(f"[{event}] {json.dumps(data)}")


def _stream_events(base: str, path: str, payload: Dict[str, Any], timeout: float, show_html: bool = False) -> int:
    failed = False
    with httpx.Client(timeout=timeout) as client:
        with client.stream("POST", _join_url(base, path), json=payload) as resp:
            if resp.status_code >= 400:
                resp.read()
                print(f"Request failed: HTTP {resp.status_code} {resp.text[:300]}")
                return 1
            for event, data in parse_sse_lines(resp.iter_lines()):
                _print_event(event, data, show_html=show_html)
                if event == "error":
                    failed = True
    return 1 if failed else 0


def run_generate(args: argparse.Namespace) -> int:
    payload: Dict[str, Any] = {"query": args.query, "projectId": args.project}
    if args.session:
        payload["sessionId"] = args.session
    if args.brand_voice:
        payload["brandVoice"] = args.brand_voice
    return _stream_events(args.base_url, "/generate", payload, args.timeout, show_html=args.html)


def run_plan(args: argparse.Namespace) -> int:
    try:
        plan = json.loads(Path(args.plan_file).read_text())
    except (OSError, ValueError) as exc:
        print(f"Could not read plan: {exc}")
        return 1
    payload = {"plan": plan, "projectId": args.project or "", "validate": args.validate}
    return _stream_events(args.base_url, "/plans/execute", payload, args.timeout)


def run_render(args: argparse.Namespace) -> int:
    try:
        content = json.loads(args.content)
    except ValueError:
        content = args.content
    print(build_block_html(args.block_type, content))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="pagegen CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    parser.add_argument("--timeout", type=float, default=300.0, help="Request timeout seconds")
    subparsers = parser.add_subparsers(dest="command")

    generate = subparsers.add_parser("generate", help="Generate a page for a query")
    generate.add_argument("query", help="Visitor query")
    generate.add_argument("--project", required=True, help="Project id")
    generate.add_argument("--session", default=None, help="Session id for query history")
    generate.add_argument("--brand-voice", default=None, help="Override the project's brand voice")
    generate.add_argument("--html", action="store_true", help="Print block markup as it arrives")

    plan = subparsers.add_parser("plan", help="Execute a plan JSON file")
    plan.add_argument("plan_file", help="Path to plan JSON")
    plan.add_argument("--project", default=None, help="Project id for tool calls")
    plan.add_argument("--validate", action="store_true", help="Run the validation pass")

    render = subparsers.add_parser("render", help="Render block content locally")
    render.add_argument("block_type", help="Block type, e.g. hero")
    render.add_argument("content", help="Block content JSON")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "generate":
        return run_generate(args)
    if args.command == "plan":
        return run_plan(args)
    if args.command == "render":
        return run_render(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
