import argparse
import logging
import sys
from typing import List, Optional

from . import config
from .errors import HandshakeTimeout, SessionError
from .game import Player
from .net.net import connect
from .net.relay import Relay
from .session import Match, NetworkPeer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tictac - tic-tac-toe on one keyboard or across the network")
    parser.add_argument("--log-level", type=str, default=config.LOG_LEVEL, help="Logging level")
    parser.add_argument("--log-file", type=str, default=None, help="Write logs here instead of stderr")
    subparsers = parser.add_subparsers(dest="mode", required=True)

    local_p = subparsers.add_parser("local", help="Two players on this keyboard")
    local_p.add_argument("--gui", action="store_true", help="Play in a pygame window")

    host_p = subparsers.add_parser("host", help="Host a networked match (you play X)")
    host_p.add_argument("--bind", type=str, default="0.0.0.0", help="Bind address")
    host_p.add_argument("--port", type=int, default=config.DEFAULT_PORT, help="TCP port to listen on")

    join_p = subparsers.add_parser("join", help="Join a networked match (you play O)")
    join_p.add_argument("--address", type=str, default=None, help="Host IP or name")
    join_p.add_argument("--port", type=int, default=config.DEFAULT_PORT, help="TCP port to connect")

    for p in (host_p, join_p):
        p.add_argument("--game-id", type=str, default=None, help="Meet the other player through the relay")
        p.add_argument("--relay", type=str, default=config.RELAY_ADDR, help="Relay host:port (or TICTAC_RELAY)")
        p.add_argument("--gui", action="store_true", help="Play in a pygame window")

    relay_p = subparsers.add_parser("relay", help="Run the game-id relay")
    relay_p.add_argument("--bind", type=str, default="0.0.0.0", help="Bind address")
    relay_p.add_argument("--port", type=int, default=config.DEFAULT_RELAY_PORT, help="UDP port to listen on")
    return parser


def build_match(args: argparse.Namespace) -> Match:
    if args.mode == "local":
        return Match()
    is_host = args.mode == "host"
    if args.game_id is not None:
        print(f"Looking for the other player of game {args.game_id!r} ...")
    elif is_host:
        print("Waiting for a player to connect...")
    else:
        print(f"Connecting to {args.address}:{args.port} ...")
    link = connect(
        is_host,
        address=getattr(args, "address", None),
        port=args.port,
        bind=getattr(args, "bind", "0.0.0.0"),
        game_id=args.game_id,
        relay=args.relay,
    )
    peer = NetworkPeer(link)
    peer.start()
    return Match(peer, Player.A if is_host else Player.B)


def run_relay(bind: str, port: int) -> None:
    relay = Relay(bind, port)
    print(f"Relay listening on {relay.address[0]}:{relay.address[1]}")
    try:
        relay.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        relay.close()


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.mode == "join" and args.address is None and args.game_id is None:
        parser.error("join needs --address or --game-id")
    if args.mode in ("host", "join") and args.game_id is not None and not args.relay:
        parser.error("--game-id needs --relay or TICTAC_RELAY")

    logging.basicConfig(
        level=args.log_level.upper(),
        filename=args.log_file,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.mode == "relay":
        run_relay(args.bind, args.port)
        return

    try:
        match = build_match(args)
        try:
            if args.gui:
                from .gui import run_gui
                run_gui(match)
            else:
                from .terminal import run_terminal
                run_terminal(match)
        finally:
            match.close()
    except (HandshakeTimeout, SessionError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        print(f"tictac: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        # interrupted while still connecting
        sys.exit(130)
    print(match.status_text())
