"""
Static catalog of images offered for new instances.
"""

from dataclasses import dataclass
from typing import Dict, List

UBUNTU_SERVER = "https://cloud-images.ubuntu.com/releases"
COMMUNITY_SERVER = "https://images.lxd.canonical.com"


@dataclass(frozen=True)
class Image:
    alias: str
    description: str


IMAGE_CATALOG: List[Image] = [
    Image("ubuntu:24.04", "Ubuntu 24.04 LTS"),
    Image("ubuntu:22.04", "Ubuntu 22.04 LTS"),
    Image("debian:12", "Debian 12 (Bookworm)"),
    Image("debian:11", "Debian 11 (Bullseye)"),
    Image("alpine:3.20", "Alpine Linux 3.20"),
    Image("alpine:3.19", "Alpine Linux 3.19"),
    Image("fedora:40", "Fedora 40"),
    Image("rockylinux:9", "Rocky Linux 9"),
    Image("archlinux:current", "Arch Linux (Current)"),
]

_COMMUNITY_DISTROS = {"debian", "alpine", "fedora", "rockylinux", "archlinux"}


def image_source(alias: str) -> Dict[str, str]:
    """
    Build the 'source' object of an instance creation request.

    'ubuntu:24.04' pulls from the Ubuntu simplestreams server, 'debian:12'
    and the other catalog distributions from the community server as
    'debian/12'. Anything else is treated as a local image alias.
    """
    distro, sep, version = alias.partition(":")
    if sep and distro == "ubuntu":
        return {
            "type": "image",
            "mode": "pull",
            "protocol": "simplestreams",
            "server": UBUNTU_SERVER,
            "alias": version,
        }
    if sep and distro in _COMMUNITY_DISTROS:
        return {
            "type": "image",
            "mode": "pull",
            "protocol": "simplestreams",
            "server": COMMUNITY_SERVER,
            "alias": f"{distro}/{version}",
        }
    return {"type": "image", "alias": alias}
