#!/usr/bin/env python3
"""Simple CLI for talking to the portfolio agent locally"""

import argparse
import asyncio
from typing import Optional

from portfolio_agent.config import settings
from portfolio_agent.core.portfolio import get_scanner
from portfolio_agent.core.recovery import RetryExhausted, retry_with_backoff
from portfolio_agent.core.session import AGENT_ERROR, SessionChannel, SessionState, Sender
from portfolio_agent.logging_config import setup_logging
from portfolio_agent.services.completion import build_completion_service


class TranscriptPrinter:
    """Prints agent turns as they land in the session transcript."""

    def __init__(self) -> None:
        self._seen = 0
        self.reply_ready = asyncio.Event()

    def __call__(self, state: SessionState) -> None:
        for message in state.transcript[self._seen:]:
            if message.sender is Sender.AGENT:
                print(f"🤖 Agent: {message.text}")
        self._seen = len(state.transcript)
        if not state.is_agent_thinking:
            self.reply_ready.set()


async def cli_chat(url: Optional[str] = None):
    """Interactive chat over the agent WebSocket"""
    url = url or settings.agent_ws_url
    channel = SessionChannel(url, connect_timeout=settings.session_connect_timeout_seconds)
    printer = TranscriptPrinter()
    channel.subscribe(printer)

    async def on_error(event):
        await channel.report_failure(event.message or "Agent failed to respond")

    channel.on_event(AGENT_ERROR, on_error)

    print(f"🔌 Connecting to {url}...")
    if not await channel.open():
        print("❌ Could not connect to the agent")
        return

    print("Type 'exit' to quit")
    print("-" * 40)
    try:
        while True:
            # Wait for the greeting or the previous reply before prompting again
            await printer.reply_ready.wait()
            try:
                user_input = (await asyncio.to_thread(input, "\n💬 You: ")).strip()
            except EOFError:
                break

            if user_input.lower() in ["exit", "quit", "q"]:
                print("Goodbye! 👋")
                break
            if not user_input:
                continue

            printer.reply_ready.clear()
            if not await channel.send_message(user_input):
                print("❌ Connection closed")
                break
    except KeyboardInterrupt:
        print("\nGoodbye! 👋")
    finally:
        await channel.close()


async def cli_scan():
    """Run one portfolio scan immediately"""
    scanner = get_scanner()
    print(f"🔍 Scanning {scanner.wallet_address or '<no wallet configured>'}...")
    report = await scanner.scan_and_optimize()
    if report is None:
        status = scanner.status()
        reason = status["last_error"] or "skipped (not configured or ran recently)"
        print(f"⚠️  No scan: {reason}")
        return

    print(f"\nBalances: {report.balances.token_count} tokens, ${report.balances.total_value_usd:,.2f} USD")
    print("\nAnalysis:")
    print(report.analysis.output)
    print("\nExecution:")
    print(report.execution.output)


async def cli_complete(prompt: str, provider: Optional[str] = None):
    """Send a single prompt to the configured provider"""
    service = build_completion_service(provider)
    try:
        completion = await retry_with_backoff(
            lambda: service.generate_completion(prompt),
            operation_name="cli completion",
        )
        print(completion)
    except RetryExhausted as e:
        print(f"❌ Error: {e}")
    finally:
        await service.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Portfolio Agent CLI")
    subparsers = parser.add_subparsers(dest="command")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat mode")
    chat_parser.add_argument("--url", help=f"WebSocket URL (default: {settings.agent_ws_url})")

    subparsers.add_parser("scan", help="Run one portfolio yield scan")

    complete_parser = subparsers.add_parser("complete", help="One-shot completion")
    complete_parser.add_argument("prompt", help="Prompt text")
    complete_parser.add_argument("--provider", help="primary, confidential_capable or secondary")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging()
    command = args.command.lower()

    if command == "chat":
        await cli_chat(args.url)
    elif command == "scan":
        await cli_scan()
    elif command == "complete":
        await cli_complete(args.prompt, args.provider)
    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    asyncio.run(main())
