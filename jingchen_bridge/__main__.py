import argparse
import json
import logging
import sys
from pathlib import Path

import requests

from jingchen_bridge import env, orders, templates
from jingchen_bridge.client import BridgeClient

logger = logging.getLogger("jingchen_bridge")


def cmd_serve(args):
    import uvicorn
    uvicorn.run("jingchen_bridge.api:app", host=args.host, port=args.port, log_level=env.LOG_LEVEL.lower())


def cmd_scan(args):
    client = BridgeClient(args.url)
    print(json.dumps(client.scan(args.kind), ensure_ascii=False, indent=2))


def cmd_status(args):
    client = BridgeClient(args.url)
    print(json.dumps(client.status(), ensure_ascii=False, indent=2))


def cmd_print_md(args):
    content = Path(args.file).read_text(encoding="utf-8")
    kind, data = orders.parse(content)
    if kind == "orders":
        pages = templates.order_pages(
            data,
            copies=args.copies,
            include_order_labels=not args.no_order_labels,
            with_barcode=args.barcode,
        )
    else:
        pages = templates.product_pages(data, copies=args.copies)

    if not pages:
        logger.error("No labels found in %s", args.file)
        return 1

    logger.info("Parsed %s: %d %s, %d label(s)", args.file, len(data), kind, len(pages))
    client = BridgeClient(args.url)
    result = client.print_pages(pages, templates.LABEL_WIDTH, templates.LABEL_HEIGHT, density=args.density)
    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="jingchen_bridge", description="HTTP bridge for Jingchen label printers")
    parser.add_argument("--url", default=env.BRIDGE_URL, help="bridge base URL (client commands)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="run the HTTP bridge")
    p.add_argument("--host", default=env.HOST)
    p.add_argument("--port", type=int, default=env.PORT)
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("scan", help="list printers seen by the bridge")
    p.add_argument("--kind", choices=["usb", "wifi"], default="usb")
    p.set_defaults(func=cmd_scan)

    p = sub.add_parser("status", help="show bridge/printer status")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("print-md", help="print labels from a Markdown order file")
    p.add_argument("file")
    p.add_argument("--copies", type=int, default=1)
    p.add_argument("--density", type=int, default=env.DEFAULT_DENSITY)
    p.add_argument("--barcode", action="store_true", help="use the barcode layout for products")
    p.add_argument("--no-order-labels", action="store_true")
    p.set_defaults(func=cmd_print_md)

    args = parser.parse_args(argv)
    logging.basicConfig(level=env.LOG_LEVEL)
    try:
        return args.func(args) or 0
    except requests.RequestException as e:
        logger.error("Bridge request failed: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
