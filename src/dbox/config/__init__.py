"""Configuration — Pydantic models for dbox settings."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigurationError(Exception):
    """Raised when a config or environment file cannot be read or parsed."""

    def __init__(self, config_path: str, message: str) -> None:
        super().__init__(message)
        self.config_path = config_path


class VMConfig(BaseModel):
    """Hypervisor resource defaults and invocation settings."""

    ram: int = Field(default=2048, gt=0, description="RAM size in MB")
    cpu: int = Field(default=2, gt=0, description="vCPU count")
    qemu_binary: str = Field(default="qemu-system-x86_64")
    use_sudo: bool = Field(default=True)
    images_dir: str = Field(
        default="images",
        description="Directory holding <env>/<env>.{bzImage,initrd,img}",
    )
    share_dir: str | None = Field(
        default=None,
        description="Host directory exported over 9p (defaults to the cwd)",
    )


class SessionConfig(BaseModel):
    """Control-socket and attach settings."""

    socket_dir: str | None = Field(
        default=None, description="Where dbox-<id>.sock files live (OS temp dir)"
    )
    grace_period: float = Field(
        default=0.1,
        ge=0,
        description="Seconds to wait after the status query before driving I/O",
    )
    chunk_size: int = Field(default=1024, gt=0)


class DboxConfig(BaseModel):
    """Top-level dbox configuration."""

    vm: VMConfig = Field(default_factory=VMConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> DboxConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            DBOX_SOCKET_DIR  - Directory for control sockets
            DBOX_IMAGES_DIR  - Directory for VM images
            DBOX_QEMU        - Hypervisor binary
            DBOX_NO_SUDO     - Any non-empty value disables the sudo prefix
            DBOX_RAM         - Default RAM in MB
            DBOX_CPU         - Default vCPU count
        """
        try:
            from dotenv import load_dotenv

            load_dotenv(override=True)
        except ImportError:
            pass

        config_data: dict[str, Any] = {}

        if config_path:
            if not os.path.exists(config_path):
                raise ConfigurationError(
                    config_path, f"Configuration file not found: {config_path}"
                )
            try:
                with open(config_path, encoding="utf-8") as f:
                    config_data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    config_path, f"Invalid JSON in {config_path}: {e}"
                ) from e

        vm = config_data.get("vm", {})
        session = config_data.get("session", {})

        env_socket_dir = os.environ.get("DBOX_SOCKET_DIR")
        if env_socket_dir:
            session["socket_dir"] = env_socket_dir

        env_images_dir = os.environ.get("DBOX_IMAGES_DIR")
        if env_images_dir:
            vm["images_dir"] = env_images_dir

        env_qemu = os.environ.get("DBOX_QEMU")
        if env_qemu:
            vm["qemu_binary"] = env_qemu

        if os.environ.get("DBOX_NO_SUDO"):
            vm["use_sudo"] = False

        env_ram = os.environ.get("DBOX_RAM")
        if env_ram:
            vm["ram"] = env_ram

        env_cpu = os.environ.get("DBOX_CPU")
        if env_cpu:
            vm["cpu"] = env_cpu

        if vm:
            config_data["vm"] = vm
        if session:
            config_data["session"] = session

        try:
            return cls.model_validate(config_data)
        except ValidationError as e:
            raise ConfigurationError(config_path or "<env>", str(e)) from e


class EnvironmentConfig(BaseModel):
    """Custom environment overrides read from a YAML file.

    Every field is optional; unset fields leave the CLI flags alone.
    """

    name: str | None = None
    image: str | None = Field(
        default=None, description="Image name under images_dir (defaults to the env)"
    )
    ram: int | None = Field(default=None, gt=0)
    cpu: int | None = Field(default=None, gt=0)


def load_environment_yaml(path: str | Path) -> EnvironmentConfig:
    """Load a custom environment definition from YAML.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or has
            fields of the wrong type.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(
            str(path), f"Environment file not found: {path}"
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(str(path), f"Invalid YAML in {path}: {e}") from e

    if content is None:
        content = {}
    if not isinstance(content, dict):
        raise ConfigurationError(
            str(path), f"Environment file {path} must contain a mapping"
        )
    try:
        return EnvironmentConfig.model_validate(content)
    except ValidationError as e:
        raise ConfigurationError(str(path), str(e)) from e
