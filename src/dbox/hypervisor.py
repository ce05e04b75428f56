"""QEMU invocation for a devbox session."""

from __future__ import annotations

import os
import shlex
from pathlib import Path

from dbox.config import VMConfig


def build_hypervisor_command(
    environment: str,
    ram: int,
    cpu: int,
    socket_path: str | Path,
    config: VMConfig | None = None,
    image: str | None = None,
) -> str:
    """Build the shell command that boots ``environment``.

    The image set is read from ``<images_dir>/<image>/<image>.{bzImage,
    initrd,img}`` where ``image`` defaults to the environment name. The
    QEMU monitor listens on ``socket_path``; the serial console is the
    process's own stdin/stdout (``-nographic``).
    """
    if ram <= 0:
        raise ValueError(f"ram must be positive, got {ram}")
    if cpu <= 0:
        raise ValueError(f"cpu must be positive, got {cpu}")

    config = config or VMConfig()
    image = image or environment
    base = Path(config.images_dir) / image
    share = config.share_dir or os.getcwd()

    argv = [
        config.qemu_binary,
        "-enable-kvm",
        "-cpu", "host",
        "-m", f"{ram}M",
        "-smp", str(cpu),
        "-nographic",
        "-kernel", str(base / f"{image}.bzImage"),
        "-initrd", str(base / f"{image}.initrd"),
        "-append", "console=ttyS0 root=/dev/vda rw",
        "-drive", f"file={base / f'{image}.img'},format=raw,if=virtio",
        "-fsdev", f"local,id=fsdev0,path={share},security_model=none",
        "-device", "virtio-9p-pci,fsdev=fsdev0,mount_tag=hostshare",
        "-machine", "q35,accel=kvm",
        "-monitor", f"unix:{socket_path},server,nowait",
    ]  # fmt: skip
    if config.use_sudo:
        argv.insert(0, "sudo")
    return shlex.join(argv)
