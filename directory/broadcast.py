from zeroconf import ServiceInfo, Zeroconf
import socket

from utils.helpers import get_logger

logger = get_logger(__name__)

SERVICE_TYPE = "_nanofiles._udp.local."


class DirectoryBroadcast():
    def __init__(self, port, name="directory"):
        self.port = port
        self.name = name
        self.zeroconf = None
        self.service_info = None

    # Announces the directory over mDNS so peers can find it without a hostname
    def start_service(self):
        hostname = socket.gethostname()
        ip_addr = socket.gethostbyname(hostname)

        self.service_info = ServiceInfo(
            type_=SERVICE_TYPE,
            name=f"{self.name}.{SERVICE_TYPE}",
            addresses=[socket.inet_aton(ip_addr)],
            port=self.port,
            properties={},
            server=f"{hostname}.local.",
        )

        logger.info(f"Advertising directory at {ip_addr}:{self.port}")
        self.zeroconf = Zeroconf()
        self.zeroconf.register_service(self.service_info)

    def stop_service(self):
        if self.zeroconf is None:
            return
        if self.service_info:
            self.zeroconf.unregister_service(self.service_info)
        self.zeroconf.close()
        self.zeroconf = None
