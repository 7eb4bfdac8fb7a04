import argparse
# Command-line flags for the local launcher

import logging

import os

import threading

import webbrowser

from app import GAME_CONFIG, STORAGE_BACKEND, app, db_firestore

DEFAULT_PORT = 5001  # Use 5001 to avoid macOS AirPlay conflict on 5000


def _describe_config():
    config = GAME_CONFIG
    print(f"  Round time:   {config.base_time_ms} ms -> {config.min_time_ms} ms "
          f"(-{config.time_reduction_per_level} ms per level)")
    print(f"  Lives:        {config.max_wrong_answers} (unified mode)")
    print(f"  Choices:      {config.choice_count} per round, "
          f"min distance {config.min_color_distance}")

    if STORAGE_BACKEND == "firestore" and db_firestore is None:
        # create_firestore_client already logged the reason
        print("  Storage:      firestore requested but unavailable, using memory")
    else:
        print(f"  Storage:      {STORAGE_BACKEND}")


def run_app(port=DEFAULT_PORT, open_browser=True):
    print("Starting Chromatic Valley engine...")
    _describe_config()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    url = f"http://localhost:{port}/api/harmonies"
    if open_browser:
        # The server blocks below; open the catalogue once it is listening
        threading.Timer(1.5, webbrowser.open, args=(url,)).start()

    print(f"\nAPI:      http://localhost:{port}/api/...")
    print(f"Catalogue: {url}")
    print("Press Ctrl+C in this terminal to stop.")

    try:
        app.run(host='0.0.0.0', port=port, threaded=True, use_reloader=False)
    except KeyboardInterrupt:
        print("\nStopping Chromatic Valley...")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the Chromatic Valley API locally.")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", DEFAULT_PORT)))
    parser.add_argument("--no-browser", action="store_true", help="do not open the harmony catalogue")
    args = parser.parse_args(argv)
    run_app(port=args.port, open_browser=not args.no_browser)


if __name__ == "__main__":
    main()
