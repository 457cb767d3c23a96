# main.py  ==  NanoFiles entry point
#   directory  ->  runs the UDP directory until interrupted
#   peer       ->  interactive peer shell (login, nick, serve, browse, download)
import argparse

from config import load_config
from utils.helpers import set_log_level


def run_directory(config):
    from directory.server import DirectoryServer
    server = DirectoryServer(port=config["directory_port"],
                             discard_probability=config["discard_probability"],
                             advertise=config["advertise"])
    try:
        server.run()
    except KeyboardInterrupt:
        server.stop()


def run_peer(config):
    from peer.peer import Peer
    peer = Peer(config)
    peer.run_cli()


def main(argv=None):
    parser = argparse.ArgumentParser(prog="nanofiles")
    parser.add_argument("role", choices=("directory", "peer"))
    parser.add_argument("-c", "--config", default="config.yaml")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    set_log_level(config["log_level"])
    if args.role == "directory":
        run_directory(config)
    else:
        run_peer(config)


if __name__ == "__main__":
    main()
