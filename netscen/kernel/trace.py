"""
trace.py - Trace and animation sinks for SimPyKernel

ASCII trace: one line per executed action,
    <time_s> <action> <target> [key=value ...]

Animation: an XML document listing node positions and link membership.

Pcap: one libpcap capture file per device, named <prefix>-<node>-<device>.pcap.
The reference kernel models no packets, so each file holds only the global
header with the link-layer type of the device's medium.
"""

import struct
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional, Tuple


class AsciiTraceWriter:
    """Line-oriented action trace."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._file = None
        self.lines_written = 0

    def open(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, 'w')

    def write(self, time_s: float, action: str, target: str, **fields):
        if self._file is None:
            raise RuntimeError(f"Trace {self.path} is not open")
        extra = ''.join(f" {k}={v}" for k, v in fields.items() if v is not None)
        self._file.write(f"{time_s:.9f} {action} {target}{extra}\n")
        self.lines_written += 1

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class AnimationWriter:
    """Collects node positions and links, written once after the run."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.nodes: Dict[int, Tuple[str, Optional[Tuple[float, float, float]]]] = {}
        self.links: List[Tuple[str, str, List[int]]] = []

    def add_node(self, node_id: int, name: str,
                 position: Optional[Tuple[float, float, float]] = None):
        self.nodes[node_id] = (name, position)

    def add_link(self, name: str, kind: str, member_ids: List[int]):
        self.links.append((name, kind, list(member_ids)))

    def write(self, stop_time_s: Optional[float] = None) -> str:
        root = ET.Element('anim', ver='netscen-1')
        if stop_time_s is not None:
            root.set('stop', f"{stop_time_s:g}")

        for node_id, (name, position) in sorted(self.nodes.items()):
            elem = ET.SubElement(root, 'node', id=str(node_id), name=name)
            if position is not None:
                elem.set('locX', f"{position[0]:g}")
                elem.set('locY', f"{position[1]:g}")
                elem.set('locZ', f"{position[2]:g}")

        for name, kind, member_ids in self.links:
            elem = ET.SubElement(root, 'link', name=name, kind=kind)
            for member in member_ids:
                ET.SubElement(elem, 'member', id=str(member))

        self.path.parent.mkdir(parents=True, exist_ok=True)
        ET.ElementTree(root).write(self.path, encoding='utf-8', xml_declaration=True)
        return str(self.path)


# libpcap link-layer header types per medium kind
PCAP_LINKTYPES = {
    'point_to_point': 9,     # LINKTYPE_PPP
    'shared_medium': 1,      # LINKTYPE_ETHERNET
    'wireless': 105,         # LINKTYPE_IEEE802_11
}

_PCAP_MAGIC = 0xa1b2c3d4
_PCAP_SNAPLEN = 65535


class PcapWriter:
    """Per-device capture files sharing one prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.files_written: List[Path] = []

    def path_for(self, node_id: int, device: int) -> Path:
        return Path(f"{self.prefix}-{node_id}-{device}.pcap")

    def write_device(self, node_id: int, device: int, kind: str) -> Path:
        """Write the capture file of one device and return its path."""
        path = self.path_for(node_id, device)
        path.parent.mkdir(parents=True, exist_ok=True)
        header = struct.pack('<IHHiIII', _PCAP_MAGIC, 2, 4, 0, 0,
                             _PCAP_SNAPLEN, PCAP_LINKTYPES[kind])
        with open(path, 'wb') as f:
            f.write(header)
        self.files_written.append(path)
        return path
