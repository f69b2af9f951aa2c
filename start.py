import argparse
import os

import uvicorn


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Serve the flashdeck review API.")
    parser.add_argument("--host", default=os.environ.get("FLASHDECK_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("FLASHDECK_PORT", "8000")))
    parser.add_argument("--cards-file", help="CSV holding the cards (overrides FLASHDECK_CARDS_FILE)")
    parser.add_argument("--reload", action="store_true", help="restart on code changes")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    # flashdeck.main reads its settings at import time, so this must be set before uvicorn imports it
    if args.cards_file:
        os.environ["FLASHDECK_CARDS_FILE"] = args.cards_file

    print(f"Serving flashdeck on http://{args.host}:{args.port}")
    uvicorn.run("flashdeck.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
