import socket

import directory.broadcast as broadcast
import peer.discovery as discovery


class FakeInfo:
    def __init__(self, ip, port):
        self.addresses = [socket.inet_aton(ip)]
        self.port = port


class FakeZeroconf:
    instances = []

    def __init__(self):
        self.registered = []
        self.unregistered = []
        self.closed = False
        FakeZeroconf.instances.append(self)

    def register_service(self, info):
        self.registered.append(info)

    def unregister_service(self, info):
        self.unregistered.append(info)

    def get_service_info(self, type_, name):
        return FakeInfo("192.168.1.9", 6868)

    def close(self):
        self.closed = True


def test_directory_is_advertised_and_withdrawn(monkeypatch):
    monkeypatch.setattr(broadcast, "Zeroconf", FakeZeroconf)
    monkeypatch.setattr(broadcast.socket, "gethostbyname", lambda hostname: "192.168.1.9")
    b = broadcast.DirectoryBroadcast(6868)
    b.start_service()
    zc = b.zeroconf
    assert zc.registered[0].port == 6868
    assert zc.registered[0].type == broadcast.SERVICE_TYPE
    b.stop_service()
    assert zc.unregistered == zc.registered
    assert zc.closed


def test_locate_returns_first_directory(monkeypatch):
    def fake_browser(zc, service_type, listener):
        listener.add_service(zc, service_type, "directory." + service_type)

    monkeypatch.setattr(discovery, "Zeroconf", FakeZeroconf)
    monkeypatch.setattr(discovery, "ServiceBrowser", fake_browser)
    assert discovery.DirectoryDiscovery(1.0).locate() == ("192.168.1.9", 6868)
    assert FakeZeroconf.instances[-1].closed


def test_locate_times_out_without_directory(monkeypatch):
    monkeypatch.setattr(discovery, "Zeroconf", FakeZeroconf)
    monkeypatch.setattr(discovery, "ServiceBrowser", lambda zc, t, listener: None)
    assert discovery.DirectoryDiscovery(0.05).locate() is None


def test_listener_forgets_removed_directory():
    listener = discovery.DiscoveryListener()
    listener.add_service(FakeZeroconf(), broadcast.SERVICE_TYPE, "directory." + broadcast.SERVICE_TYPE)
    listener.remove_service(None, broadcast.SERVICE_TYPE, "directory." + broadcast.SERVICE_TYPE)
    assert listener.directories == {}
