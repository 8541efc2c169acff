import ipaddress
from typing import Optional

from fastapi import Header, HTTPException, Request

from jingchen_bridge import env


def verify_api_key(x_api_key: Optional[str] = Header(None)):
    if not env.API_KEY:
        return
    if x_api_key != env.API_KEY:
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key"
        )


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    host = request.client.host if request.client else ""
    return host[7:] if host.startswith("::ffff:") else host


def ip_allowed(ip: str, allowed) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for entry in allowed:
        try:
            if addr in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def verify_client_ip(request: Request):
    if not env.ALLOWED_IPS:
        return
    ip = client_ip(request)
    if not ip_allowed(ip, env.ALLOWED_IPS):
        raise HTTPException(
            status_code=403,
            detail=f"IP {ip} not allowed"
        )
