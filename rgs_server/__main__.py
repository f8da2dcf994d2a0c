import argparse
import logging

import uvicorn

from .config import API_AMOUNT_MULTIPLIER, load_settings
from .main import create_app


logger = logging.getLogger("rgs_server")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rgs_server", description="Run the mock RGS wallet server.")
    parser.add_argument("--variant", choices=["lines", "ways"], help="book set to serve (default: lines)")
    parser.add_argument("--host", help="bind address")
    parser.add_argument("--port", type=int, help="port (default: 3456 lines, 3457 ways)")
    parser.add_argument("--balance", type=int, dest="starting_balance", help="starting balance in minor units")
    parser.add_argument(
        "--policy",
        choices=["discard", "reject", "settle"],
        dest="open_round_policy",
        help="what a new bet does to an unclosed bonus round",
    )
    parser.add_argument(
        "--strict-balance",
        action="store_true",
        help="reject bets the balance cannot cover",
    )
    parser.add_argument("--log-level", dest="log_level", help="logging level (default: INFO)")
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    overrides = vars(args)
    strict = overrides.pop("strict_balance")
    if strict:
        overrides["allow_negative_balance"] = False
    settings = load_settings(**overrides)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    controller = app.state.controller
    port = settings.effective_port

    logger.info("%s running at http://%s:%d", settings.variant_info["label"], settings.host, port)
    logger.info(
        "Open your game at http://localhost:3001/?rgs_url=localhost:%d&sessionID=mock-session&lang=en", port
    )
    logger.info("Starting balance: %s %.2f", settings.currency, controller.balance() / API_AMOUNT_MULTIPLIER)
    logger.info(
        "%d sample books loaded (%d bonus rounds)",
        len(controller.catalogue),
        len(controller.catalogue.bonus_books()),
    )
    uvicorn.run(app, host=settings.host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
