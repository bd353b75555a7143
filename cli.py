"""Command-line interface for Second Brain.

Runs searches locally against the Mistral API, without history, quota or cooldown.
Press **Enter** with no input to see the command list.

Available commands
------------------
  ask <question>          Retrieve every field for <question>
  field <name> <question> Retrieve a single field
  fields                  List the fields in dispatch order
  quit / exit             Leave the program
"""

from __future__ import annotations

import argparse
import json
import textwrap
from typing import Optional

from config import Settings, load_settings
from fields import FIELD_ORDER, FIELDS, get_field
from LLM import MistralClient
from models import FieldResult, Exposition
from orchestrator import FieldOrchestrator
from rate_limiter import DailyQuota
from supabase_client import SupabaseClient


def _format_value(value) -> str:
    """
    Render a parsed field for the terminal.

    Args:
        value: A field value (string, Exposition, list of sources/images/keywords).

    Returns:
        str: Human readable text.
    """
    if isinstance(value, Exposition):
        parts = [value.introduction] + [f"  {p}" for p in value.paragraphs] + [value.conclusion]
        return "\n".join(p for p in parts if p.strip())
    if isinstance(value, list):
        lines = []
        for item in value:
            if hasattr(item, "url"):
                label = getattr(item, "title", None) or getattr(item, "description", "")
                lines.append(f"- {item.url} ({label})")
            else:
                lines.append(f"- {item}")
        return "\n".join(lines)
    return str(value)


def _print_result(result: FieldResult, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(result.to_event(), ensure_ascii=False))
        return
    label = get_field(result.field).label
    if result.ok:
        print(f"\n── {label} ──\n{_format_value(result.value)}")
    else:
        print(f"\n── {label} ── ✗ {result.error}")


def _print_help() -> None:
    """
    Print the help message with available commands.
    """
    print(textwrap.dedent(
        """
        ── Available commands ────────────────────────────────────────────────
          ask <question>           Retrieve every field for <question>
          field <name> <question>  Retrieve a single field
          fields                   List the fields in dispatch order
          quit / exit              Exit the program
        """.rstrip()
    ))


def run_search(orchestrator: FieldOrchestrator, question: str, field: Optional[str] = None,
               model: Optional[str] = None, language: Optional[str] = None, as_json: bool = False) -> None:
    if field:
        _print_result(orchestrator.fetch_field(question, field, model=model, language=language), as_json)
        return
    for result in orchestrator.run(question, model=model, language=language):
        _print_result(result, as_json)


def interactive_mode(orchestrator: FieldOrchestrator, model: Optional[str] = None) -> None:
    """
    Run Second Brain in interactive CLI mode.

    Args:
        orchestrator (FieldOrchestrator): The orchestrator used for every search.
        model (str): Model id, the configured default when None.
    """
    print("Second Brain CLI: press Enter for commands. Type 'exit' to quit.")

    try:
        while True:
            try:
                raw = input("brain> ").strip()
            except EOFError:
                print()
                break

            if raw == "":
                _print_help()
                continue

            cmd, *rest = raw.split(" ", 1)
            arg = rest[0] if rest else ""

            if cmd in {"quit", "exit"}:
                break

            elif cmd == "fields":
                for spec in FIELDS:
                    print(f"{spec.name:<20} {spec.label}")

            elif cmd == "ask":
                question = arg or input("Question: ")
                if not question:
                    print("Please provide a question.")
                    continue
                run_search(orchestrator, question, model=model)

            elif cmd == "field":
                name, _, question = arg.partition(" ")
                if name not in FIELD_ORDER or not question:
                    print(f"usage: field <{'|'.join(FIELD_ORDER)}> <question>")
                    continue
                run_search(orchestrator, question, field=name, model=model)

            else:
                print(f"Unknown command: {cmd}")
                _print_help()

    except KeyboardInterrupt:
        print("\n^C, exiting...")


def sweep(settings: Settings) -> bool:
    quota = DailyQuota(SupabaseClient(settings).client, settings.requests_per_day, debug=True)
    ok = quota.sweep()
    print("Old daily request counters deleted." if ok else "Cleanup failed.")
    return ok


def main() -> None:
    """
    Entry point for the CLI with command-line argument support.
    """
    parser = argparse.ArgumentParser(description="Second Brain search CLI")
    parser.add_argument("question", nargs="?", help="Question to search without entering interactive mode")
    parser.add_argument("--field", choices=FIELD_ORDER, help="Retrieve only this field")
    parser.add_argument("--model", help="Mistral model id")
    parser.add_argument("--language", choices=["fr", "en"], help="Prompt language, detected when omitted")
    parser.add_argument("--json", action="store_true", help="Print each field as a JSON event")
    parser.add_argument("--sweep", action="store_true", help="Delete daily request counters of previous days")

    args = parser.parse_args()
    settings = load_settings()

    if args.sweep:
        raise SystemExit(0 if sweep(settings) else 1)

    orchestrator = FieldOrchestrator(MistralClient(settings, debug=settings.debug), settings, debug=settings.debug)
    if args.question:
        run_search(orchestrator, args.question, args.field, args.model, args.language, args.json)
    else:
        interactive_mode(orchestrator, args.model)


if __name__ == "__main__":
    main()
