from ovpn_sync.openvpn.gateway import VpnGateway, SacliGateway, ProxyGateway, build_gateway
from ovpn_sync.openvpn.parser import LiveConnection

__all__ = ["VpnGateway", "SacliGateway", "ProxyGateway", "build_gateway", "LiveConnection"]
