from __future__ import annotations

# Single entrypoint.
#
#     python -m branch_queue.app serve [--seed-demo]
#     python -m branch_queue.app book --branch branch1 --service checkup --name Ann
#     python -m branch_queue.app checkin --token <id>
#     python -m branch_queue.app status --branch branch1
#
# Each subcommand forwards to the `main()` of the module that implements it.

import argparse

from .config import add_config_args


def main() -> None:
    parser = argparse.ArgumentParser(description="Branch Queue System (MQTT) - main entrypoint")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_mqtt_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--mqtt-host", default="127.0.0.1")
        p.add_argument("--mqtt-port", type=int, default=1883)
        p.add_argument("--namespace", default="branchqueue/v0")

    p_serve = sub.add_parser("serve", help="Start the queue server and no-show sweeper")
    add_mqtt_args(p_serve)
    p_serve.add_argument("--log-level", default="INFO")
    p_serve.add_argument("--seed-demo", action="store_true", help="load demo tokens and history at startup")
    add_config_args(p_serve)

    p_book = sub.add_parser("book", help="Book one token from a kiosk")
    add_mqtt_args(p_book)
    p_book.add_argument("--branch", required=True)
    p_book.add_argument("--service", required=True)
    p_book.add_argument("--name", required=True)
    p_book.add_argument("--phone", default=None)
    p_book.add_argument("--priority", choices=["normal", "senior", "emergency"], default="normal")

    p_in = sub.add_parser("checkin", help="Self check-in with a token id")
    add_mqtt_args(p_in)
    p_in.add_argument("--token", required=True)

    p_status = sub.add_parser("status", help="Print a branch queue")
    add_mqtt_args(p_status)
    p_status.add_argument("--branch", required=True)
    p_status.add_argument("--service", default=None)

    args = parser.parse_args()
    conn = ["--mqtt-host", args.mqtt_host, "--mqtt-port", str(args.mqtt_port), "--namespace", args.namespace]

    if args.cmd == "serve":
        from .server import main as run

        run_args = conn + [
            "--log-level",
            args.log_level,
            "--default-service-minutes",
            str(args.default_service_minutes),
            "--peak-multiplier",
            str(args.peak_multiplier),
            "--no-show-minutes",
            str(args.no_show_minutes),
            "--sweep-interval",
            str(args.sweep_interval),
            "--seat-capacity",
            str(args.seat_capacity),
        ]
        if args.seed_demo:
            run_args += ["--seed-demo"]
        _dispatch_to_module_main(run, run_args)
        return

    from .kiosk import main as kiosk

    if args.cmd == "book":
        run_args = conn + [
            "book",
            "--branch",
            args.branch,
            "--service",
            args.service,
            "--name",
            args.name,
            "--priority",
            args.priority,
        ]
        if args.phone:
            run_args += ["--phone", args.phone]
        _dispatch_to_module_main(kiosk, run_args)
        return

    if args.cmd == "checkin":
        _dispatch_to_module_main(kiosk, conn + ["checkin", "--token", args.token])
        return

    if args.cmd == "status":
        run_args = conn + ["status", "--branch", args.branch]
        if args.service:
            run_args += ["--service", args.service]
        _dispatch_to_module_main(kiosk, run_args)
        return


def _dispatch_to_module_main(module_main, argv: list[str]) -> None:
    import sys

    old_argv = sys.argv[:]
    try:
        sys.argv = [old_argv[0], *argv]
        module_main()
    finally:
        sys.argv = old_argv


if __name__ == "__main__":
    main()
