from zeroconf import Zeroconf, ServiceBrowser, ServiceListener
import socket
import threading

from directory.broadcast import SERVICE_TYPE
from utils.helpers import get_logger

logger = get_logger(__name__)


class DiscoveryListener(ServiceListener):
    def __init__(self):
        self.directories = {}
        self.found = threading.Event()

    def add_service(self, zeroconf, type, name):
        info = zeroconf.get_service_info(type, name)
        if info and info.addresses:
            ip = socket.inet_ntoa(info.addresses[0])
            self.directories[name] = (ip, info.port)
            logger.info(f"Found directory {name.split('.')[0]} at {ip}:{info.port}")
            self.found.set()

    def remove_service(self, zeroconf, type, name):
        if self.directories.pop(name, None):
            logger.info(f"Directory left: {name.split('.')[0]}")

    def update_service(self, zeroconf, type, name):
        self.add_service(zeroconf, type, name)


class DirectoryDiscovery:
    def __init__(self, discovery_timeout):
        self.discovery_timeout = discovery_timeout
        self.listener = DiscoveryListener()

    def locate(self):
        """
        Browse the local network for a directory. Returns (ip, port) of the
        first one found within the timeout, or None.
        """
        zeroconf = Zeroconf()
        try:
            ServiceBrowser(zeroconf, SERVICE_TYPE, self.listener)
            self.listener.found.wait(self.discovery_timeout)
        finally:
            zeroconf.close()
        for address in self.listener.directories.values():
            return address
        logger.warning(f"No directory found within {self.discovery_timeout}s")
        return None
