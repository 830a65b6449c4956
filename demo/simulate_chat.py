#!/usr/bin/env python3
"""
demo/simulate_chat.py

Usage:
  python demo/simulate_chat.py --from 51999888777 --name Ana 1 1 2
  python demo/simulate_chat.py --from 51999888777 --promo "Ana" "Facultad de Ciencias Contables" "Maestría en Tributación"

Each positional argument is posted to /webhook/message as one inbound chat
message; after every message the script prints the node the user is parked on.
With the default stub delivery the bot's replies show up in the server log.
"""
import argparse
import json
import os
import time
from pathlib import Path

import requests

from posgradobot.utils.logging import get_logger

DEFAULT_BASE = "http://localhost:3008"

logger = get_logger("posgradobot.demo", os.environ.get("LOG_LEVEL", "info"))


def post_message(base_url, from_number, body, name=None):
    url = f"{base_url.rstrip('/')}/webhook/message"
    payload = {"from": from_number, "body": body}
    if name:
        payload["name"] = name
    resp = requests.post(url, json=payload, timeout=10)
    resp.raise_for_status()
    return resp.json()


def get_session(base_url, user_id):
    url = f"{base_url.rstrip('/')}/api/sessions/{user_id}"
    resp = requests.get(url, timeout=5)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


def send_promotion(base_url, numero, mensaje, facultad, programa):
    url = f"{base_url.rstrip('/')}/v1/enviar-mensaje"
    payload = {"numero": numero, "mensaje": mensaje, "facultad": facultad, "programa": programa}
    resp = requests.post(url, json=payload, timeout=30)
    return resp.status_code, resp.json()


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--base", default=os.environ.get("BASE_URL", DEFAULT_BASE))
    parser.add_argument("--from", dest="from_number", required=True)
    parser.add_argument("--name", default=None)
    parser.add_argument("--script", default=None, help="Text file with one message per line")
    parser.add_argument("--promo", nargs=3, metavar=("NAME", "FACULTAD", "PROGRAMA"), default=None)
    parser.add_argument("--pause", type=float, default=0.5, help="Seconds to wait between messages")
    parser.add_argument("messages", nargs="*")
    args = parser.parse_args()

    if args.promo:
        status, body = send_promotion(args.base, args.from_number, *args.promo)
        logger.info("enviar-mensaje -> %s %s", status, json.dumps(body, ensure_ascii=False))
        return

    messages = list(args.messages)
    if args.script:
        messages.extend(line.strip() for line in Path(args.script).read_text(encoding="utf-8").splitlines() if line.strip())
    if not messages:
        messages = ["hola"]

    for text in messages:
        logger.info("-> %r %s", text, post_message(args.base, args.from_number, text, args.name))
        # the turn runs in a background task on the server
        time.sleep(args.pause)
        session = get_session(args.base, args.from_number)
        logger.info("   parked at %s", session.get("node") if session else None)


if __name__ == "__main__":
    main()
