import os

from directory.connector import DirectoryConnector
from peer.file_store import FileCatalog
from peer.listener import PeerListener
from peer.transfer import PeerConnector
from protocol.errors import DirectoryUnreachableError, MalformedMessageError, PeerProtocolError
from utils.helpers import format_file_table, get_logger

logger = get_logger(__name__)

STOP_SERVER_COMMAND = "fgstop"
MAX_STOP_ATTEMPTS = 3

HELP = """Commands:
  login                      Contact the directory
  nick <name>                Register a nickname
  users                      List registered users
  files                      List files published in the directory
  serve                      Serve shared files (type 'fgstop' to stop)
  browse <nick|ip:port>      Connect to a peer serving files
  query                      List files of the connected peer
  download <hash> <name>     Download a file from the connected peer
  close                      Disconnect from the peer
  quit                       Log off and exit"""


class Peer:
    def __init__(self, config, catalog=None, input_func=input):
        self.config = config
        self.port = config["listen_port"]
        self.shared_dir = config["shared_dir"]
        self.download_dir = config["download_dir"]
        self.catalog = catalog if catalog is not None else FileCatalog(self.shared_dir)
        self.input = input_func
        self.nickname = None
        self.directory = None
        self.listener = None
        self._listener_thread = None
        self.browser = None
        logger.debug(f"Peer initialized, sharing {self.shared_dir}")

    # -- directory --

    def locate_directory(self):
        host = self.config.get("directory_host")
        if host:
            return host, self.config["directory_port"]
        from peer.discovery import DirectoryDiscovery
        return DirectoryDiscovery(self.config["discovery_timeout"]).locate()

    def login(self):
        address = self.locate_directory()
        if address is None:
            print("[✗] Could not locate a directory")
            return False
        self.directory = DirectoryConnector(address[0], address[1],
                                            timeout_ms=self.config["timeout_ms"],
                                            max_attempts=self.config["max_attempts"])
        servers = self.directory.log_into_directory()
        print(f"[✓] Logged into directory at {address[0]}:{address[1]}. Number of servers: {servers}")
        peer_name = self.config.get("peer_name")
        if peer_name and self.nickname is None:
            self.register(peer_name)
        return True

    def _require_directory(self):
        if self.directory is None:
            print("[!] Not logged into a directory. Use 'login' first.")
            return False
        return True

    def register(self, nickname):
        if not self._require_directory():
            return False
        if ":" in nickname:
            print("[✗] Invalid nickname (cannot contain ':' character)")
            return False
        if self.nickname is not None:
            print(f"[!] Already registered as '{self.nickname}'")
            return False
        if self.directory.register_nickname(nickname):
            self.nickname = nickname
            print(f"[✓] Registered as '{nickname}'")
            return True
        print("[✗] Nickname already in use, please use another one")
        return False

    def users(self):
        if not self._require_directory():
            return None
        users = self.directory.get_user_list()
        if not users:
            print("No users registered yet.")
        for user in users:
            print(f" - {user.name}{'  [serving]' if user.serving else ''}")
        return users

    def files(self):
        if not self._require_directory():
            return None
        files = self.directory.get_files()
        if not files:
            print("No files available yet.")
        else:
            print(format_file_table(files))
        return files

    # -- serving --

    def start_serving(self):
        if not self._require_directory():
            return False
        if self.nickname is None:
            print("[!] Register a nickname before serving files.")
            return False
        if self.listener is not None:
            print("[!] Already serving files.")
            return False
        self.catalog.refresh()
        listener = PeerListener(self.catalog, self.port, accept_timeout=self.config["accept_timeout"])
        port = listener.bind()
        try:
            self.directory.serve_files(port, self.nickname, self.catalog.file_infos())
        except Exception:
            listener.sock.close()
            raise
        self.listener = listener
        self._listener_thread = listener.start_service()
        print(f"[✓] Serving {len(self.catalog.file_infos())} files on port {port}")
        return True

    def stop_serving(self):
        if self.listener is None:
            return True
        self.listener.stop()
        self._listener_thread.join()
        self.listener = None
        self._listener_thread = None
        for attempt in range(1, MAX_STOP_ATTEMPTS + 1):
            try:
                self.directory.stop_serving(self.nickname)
                print("[✓] Stopped serving files")
                return True
            except MalformedMessageError as e:
                logger.warning(f"Failure to stop serving files ({attempt}/{MAX_STOP_ATTEMPTS}): {e}")
        print("[✗] Failure to stop serving files at the directory")
        return False

    def serve(self):
        """Serve in the foreground until 'fgstop' is typed."""
        if not self.start_serving():
            return False
        print(f"Enter '{STOP_SERVER_COMMAND}' to stop the server")
        try:
            while self.input().strip() != STOP_SERVER_COMMAND:
                pass
        except (EOFError, KeyboardInterrupt):
            pass
        return self.stop_serving()

    # -- browsing other peers --

    def resolve_peer(self, target):
        """(ip, port) for a nickname, or for a literal ip:port without asking the directory."""
        if ":" in target:
            host, _, port = target.rpartition(":")
            return host, int(port)
        if not self._require_directory():
            return None
        return self.directory.lookup_user(target)

    def browse(self, target):
        if self.browser is not None:
            print("[!] Already connected to a peer. Use 'close' first.")
            return False
        try:
            address = self.resolve_peer(target)
        except ValueError:
            print(f"[✗] Invalid address '{target}'")
            return False
        if address is None:
            print(f"[✗] Peer '{target}' is not serving files")
            return False
        try:
            self.browser = PeerConnector(address)
        except OSError as e:
            logger.error(f"Could not connect to {target} at {address[0]}:{address[1]}: {e}")
            print(f"[✗] Could not connect to {address[0]}:{address[1]}: {e}")
            return False
        print(f"[✓] Connected to {target} at {address[0]}:{address[1]}")
        return True

    def _require_browser(self):
        if self.browser is None:
            print("[!] Not connected to a peer. Use 'browse' first.")
            return False
        return True

    def query(self):
        if not self._require_browser():
            return None
        files = self.browser.query_files()
        if not files:
            print("No files in this server.")
        else:
            print(format_file_table(files))
        return files

    def download(self, target_hash, local_name):
        if not self._require_browser():
            return None
        path = os.path.join(self.download_dir, os.path.basename(local_name))
        result = self.browser.download(target_hash, path)
        status = result["status"]
        if status == "downloaded":
            print(f"[✓] Downloaded to {path}")
        elif status == "exists":
            print("[✗] A file with this name already exists, please try another name")
        elif status == "not_found":
            print("[✗] Requested file by hash could not be found")
        elif status == "corrupted":
            print("[✗] Requested file was corrupted during download, please try again")
        else:
            print(f"[✗] Download unsuccessful: {result.get('reason')}")
        return result

    def close_browser(self):
        if self.browser is None:
            return
        try:
            self.browser.close()
        except OSError as e:
            logger.warning(f"Error closing peer connection: {e}")
        self.browser = None

    def quit(self):
        self.close_browser()
        if self.directory is None:
            return True
        try:
            self.stop_serving()
            if self.nickname is not None:
                self.directory.log_off(self.nickname)
                self.nickname = None
            else:
                self.directory.close()
        finally:
            self.directory = None
        return True

    # -- shell --

    def run_cli(self):
        while True:
            try:
                cmd = self.input(">>> ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\nInterrupted. Exiting")
                cmd = "quit"
            parts = cmd.split()
            if not parts:
                continue
            try:
                if not self.dispatch(parts):
                    break
            except DirectoryUnreachableError as e:
                logger.error(str(e))
                print("[✗] Directory unreachable. Closing NanoFiles.")
                self.directory = None
                self.close_browser()
                break
            except (MalformedMessageError, PeerProtocolError, OSError) as e:
                logger.error(f"Error during '{parts[0]}': {e}")
                print(f"[!] Error: {e}")

    def dispatch(self, parts):
        """Run one shell command. Returns False when the shell must exit."""
        name, args = parts[0], parts[1:]
        usage = {"nick": 1, "browse": 1, "download": 2}
        if name in usage and len(args) != usage[name]:
            print("Usage: " + next(line.strip() for line in HELP.splitlines() if line.strip().startswith(name)))
            return True
        if name in ("quit", "exit"):
            self.quit()
            print("Exiting")
            return False
        if name == "help":
            print(HELP)
        elif name == "login":
            self.login()
        elif name == "nick":
            self.register(args[0])
        elif name == "users":
            self.users()
        elif name == "files":
            self.files()
        elif name == "serve":
            self.serve()
        elif name == "browse":
            self.browse(args[0])
        elif name == "query":
            self.query()
        elif name == "download":
            self.download(args[0], args[1])
        elif name == "close":
            self.close_browser()
        else:
            print("Unknown command. Type 'help'.")
        return True
