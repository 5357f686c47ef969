"""
HTTP请求工具
"""

import ipaddress
from typing import Iterable, List, Optional, Union

from fastapi import Request

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def normalize_ip(value: Optional[str]) -> Optional[str]:
    """
    校验并规范化IP地址

    Returns:
        合法时返回标准形式的IP，否则返回 None
    """
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def parse_networks(entries: Iterable[str]) -> List[Network]:
    """把 IP / CIDR 配置解析为网段列表，非法项忽略"""
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry.strip(), strict=False))
        except ValueError:
            continue
    return networks


def _is_trusted(ip: Optional[str], networks: List[Network]) -> bool:
    if not ip or not networks:
        return False
    address = ipaddress.ip_address(ip)
    return any(address in network for network in networks)


def get_client_ip(request: Request, trusted_proxies: Optional[Iterable[str]] = None) -> str:
    """
    获取客户端真实IP

    只有当直连地址属于受信任代理时才读取代理头，否则代理头可被客户端任意伪造。
    X-Forwarded-For 从右向左跳过受信任代理，取第一个非代理地址；
    代理头中的非法地址会被忽略，继续尝试下一个来源

    Args:
        request: FastAPI请求对象
        trusted_proxies: 受信任代理（IP 或 CIDR），默认读取配置

    Returns:
        客户端IP地址
    """
    peer = None
    if request.client and request.client.host:
        peer = normalize_ip(request.client.host) or request.client.host

    if trusted_proxies is None:
        from core.config import get_settings
        trusted_proxies = get_settings().trusted_proxies
    networks = parse_networks(trusted_proxies)

    if _is_trusted(normalize_ip(peer), networks):
        # Nginx配置：proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            hops = [normalize_ip(hop) for hop in forwarded.split(",")]
            for ip in reversed(hops):
                if ip and not _is_trusted(ip, networks):
                    return ip

        # Nginx配置：proxy_set_header X-Real-IP $remote_addr
        ip = normalize_ip(request.headers.get("X-Real-IP"))
        if ip:
            return ip

    return peer or "unknown"


def get_user_agent(request: Request) -> str:
    """获取用户代理"""
    return request.headers.get("User-Agent", "")
