#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Chat Relay — Dev WebSocket Chat Client (/ws/chat)
-------------------------------------------------
Interactive console tool for talking to the assistant through the relay,
without Telegram.

Features:
- Simple REPL: you type, the assistant answers.
- Sends TurnRequest-shaped JSON to /ws/chat.
- Prints the reply text and numbers the selectable options; typing a number
  sends that option's value, like pressing the button in Telegram.
- AUTO-RECONNECT when the connection drops (with backoff). A question sent
  right before the drop is resent after reconnect.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from typing import Any, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed

DEFAULT_SERVER = "ws://127.0.0.1:8000/ws/chat"


class PendingMessage(Exception):
    """
    Raised when the connection drops while we are waiting for a reply
    to a frame that was already sent. `payload` is resent after reconnect.
    """

    def __init__(self, payload: Dict[str, Any]) -> None:
        super().__init__("Connection lost with a pending message.")
        self.payload = payload


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Chat Relay — Dev WebSocket Chat Client (/ws/chat)",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=DEFAULT_SERVER,
        help=f"WebSocket server URL (default: {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "--conversation",
        type=str,
        default=None,
        help="conversation_id to use (default: a random dev-... id).",
    )
    parser.add_argument(
        "--first-name",
        dest="first_name",
        type=str,
        default=None,
        help="first_name injected into the assistant context.",
    )
    args = parser.parse_args()
    if not args.conversation:
        args.conversation = f"dev-{uuid.uuid4().hex[:8]}"
    return args


def build_payload(text: str, args: argparse.Namespace) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "conversation_id": args.conversation,
        "text": text,
    }
    if args.first_name:
        payload["first_name"] = args.first_name
    return payload


def show_reply(raw: str, options: List[Dict[str, Any]]) -> None:
    """Print one server frame and remember its options for numeric picks."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        print(f"Raw response (not JSON): {raw}")
        return

    if data.get("type") == "error":
        print(f"Server error: {data.get('code')} - {data.get('message')}")
        details = data.get("details")
        if details:
            print(f"  details: {details}")
        print()
        return

    print(f"\nAssistant: {data.get('display_text', '')}")
    options[:] = data.get("selectable_options") or []
    for idx, opt in enumerate(options, start=1):
        print(f"  [{idx}] {opt.get('label')}")
    print()


async def run_single_session(
    args: argparse.Namespace,
    pending_payload: Optional[Dict[str, Any]] = None,
) -> None:
    """One connect -> chat -> disconnect cycle."""
    print("Type a message and press Enter. Type /quit to exit.\n")
    print(f"[client] server       : {args.server}")
    print(f"[client] conversation : {args.conversation}")
    print()

    options: List[Dict[str, Any]] = []

    async with websockets.connect(args.server, ping_interval=None, ping_timeout=None) as ws:
        print("Connected.\n")

        if pending_payload is not None:
            print("[client] Re-sending last unanswered message after reconnect...\n")
            await ws.send(json.dumps(pending_payload))
            try:
                raw = await ws.recv()
            except ConnectionClosed as exc:
                raise PendingMessage(pending_payload) from exc
            show_reply(raw, options)

        while True:
            try:
                text = input("You: ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\nBye.")
                raise KeyboardInterrupt

            if not text:
                continue
            if text.lower() in {"/quit", "/exit"}:
                print("Bye.")
                raise KeyboardInterrupt

            # A bare number picks one of the last options.
            if text.isdigit() and 1 <= int(text) <= len(options):
                text = str(options[int(text) - 1].get("value", text))

            payload = build_payload(text, args)
            await ws.send(json.dumps(payload))

            try:
                raw = await ws.recv()
            except ConnectionClosed as exc:
                print(
                    "\nConnection dropped while waiting for reply. "
                    "Your last message will be resent after reconnect."
                )
                raise PendingMessage(payload) from exc

            show_reply(raw, options)


async def run_with_reconnect(args: argparse.Namespace) -> None:
    """
    Outer loop that auto-reconnects when the connection fails.

    Backoff: 3s, 6s, 9s, ... capped at 30s. Ctrl+C at any time to exit.
    """
    attempt = 0
    base_delay = 3  # seconds
    pending_payload: Optional[Dict[str, Any]] = None

    while True:
        attempt += 1
        try:
            print(f"Connecting to '{args.server}' (attempt {attempt}) ...")
            await run_single_session(args, pending_payload=pending_payload)
            return

        except KeyboardInterrupt:
            print("\nInterrupted. Bye.")
            return

        except PendingMessage as exc:
            pending_payload = exc.payload
            print("\n[client] Connection closed with a pending message.")

        except ConnectionClosed as exc:
            pending_payload = None
            print(f"\nConnection closed: {exc}")

        except OSError as exc:
            pending_payload = None
            print(f"\nConnection error: {exc}")

        delay = min(base_delay * attempt, 30)
        print(f"Reconnecting in {delay} seconds... (Ctrl+C to stop)")
        await asyncio.sleep(delay)


def main() -> None:
    args = parse_args()
    try:
        asyncio.run(run_with_reconnect(args))
    except KeyboardInterrupt:
        print("\nBye.")
        sys.exit(0)


if __name__ == "__main__":
    main()
