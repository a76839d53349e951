from __future__ import annotations

import base64
import json
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .models import CredentialsError

DOCKER_HUB_INDEX = "https://index.docker.io/v1/"
DOCKER_HUB_HOSTS = {"index.docker.io", "docker.io", "registry-1.docker.io"}


class KeyMaterial:
    """Environment variables exposing credentials for one docker invocation.

    Use it as a context manager; ``close`` removes anything written to disk.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None, cleanup: Sequence[Path] = ()) -> None:
        self._env = dict(env or {})
        self._cleanup = list(cleanup)
        self.closed = False

    def env(self) -> Dict[str, str]:
        return dict(self._env)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for path in self._cleanup:
            shutil.rmtree(path, ignore_errors=True)

    def __enter__(self) -> "KeyMaterial":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CompositeKeyMaterial(KeyMaterial):
    def __init__(self, materials: Sequence[KeyMaterial]) -> None:
        super().__init__()
        self.materials = list(materials)

    def env(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for material in self.materials:
            merged.update(material.env())
        return merged

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        _close_all(self.materials)


def _close_all(materials: Sequence[KeyMaterial]) -> None:
    if not materials:
        return
    try:
        materials[-1].close()
    finally:
        _close_all(materials[:-1])


KeyMaterialSource = Callable[[], KeyMaterial]


class KeyMaterialFactory:
    """Deferred key material, created right before a command runs."""

    def __init__(self, *sources: KeyMaterialSource) -> None:
        self.sources = list(sources)

    def plus(self, other: Optional["KeyMaterialFactory"]) -> "KeyMaterialFactory":
        if other is None:
            return self
        return KeyMaterialFactory(*self.sources, *other.sources)

    def materialize(self) -> KeyMaterial:
        materials: List[KeyMaterial] = []
        try:
            for source in self.sources:
                materials.append(source())
        except BaseException:
            _close_all(materials)
            raise
        return CompositeKeyMaterial(materials)


def _env_prefix(credentials_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", credentials_id).upper()


class EnvCredentialsProvider:
    """Looks up credentials by id in the job environment.

    The id ``my-registry`` resolves to ``MY_REGISTRY_USERNAME`` and
    ``MY_REGISTRY_PASSWORD``, or ``MY_REGISTRY_CERT_PATH`` for a docker host
    client certificate directory.
    """

    def __init__(self, env: Mapping[str, str]) -> None:
        self.env = dict(env)

    def _lookup(self, credentials_id: str, suffix: str) -> str:
        name = f"{_env_prefix(credentials_id)}_{suffix}"
        value = self.env.get(name)
        if not value:
            raise CredentialsError(f"Credentials '{credentials_id}' are missing {name}")
        return value

    def username_password(self, credentials_id: str) -> Tuple[str, str]:
        return self._lookup(credentials_id, "USERNAME"), self._lookup(credentials_id, "PASSWORD")

    def cert_path(self, credentials_id: str) -> str:
        return self._lookup(credentials_id, "CERT_PATH")


def _looks_like_host(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


@dataclass(frozen=True)
class RegistryEndpoint:
    """Registry the image is pushed to; ``url=None`` means Docker Hub."""

    url: Optional[str] = None
    credentials_id: Optional[str] = None

    @property
    def effective_url(self) -> str:
        return self.url or DOCKER_HUB_INDEX

    @property
    def host(self) -> Optional[str]:
        if not self.url:
            return None
        parsed = urlparse(self.url if "://" in self.url else f"https://{self.url}")
        if parsed.hostname in DOCKER_HUB_HOSTS:
            return None
        return parsed.netloc

    def image_name(self, repo_name: str) -> str:
        """Fully qualified image name, e.g. ``docker.acme.com/jdoe/busybox``."""

        host = self.host
        if host is None:
            return repo_name
        return f"{host}/{repo_name}"

    @classmethod
    def from_image_name(cls, image_name: str) -> Tuple["RegistryEndpoint", str]:
        """Split a registry host prefix off an image name, if it carries one."""

        first, sep, rest = image_name.partition("/")
        if sep and _looks_like_host(first):
            return cls(url=f"https://{first}"), rest
        return cls(), image_name

    def key_material_factory(self, provider: EnvCredentialsProvider) -> KeyMaterialFactory:
        if not self.credentials_id:
            return KeyMaterialFactory()
        credentials_id = self.credentials_id

        def _materialize() -> KeyMaterial:
            username, password = provider.username_password(credentials_id)
            config_dir = Path(tempfile.mkdtemp(prefix="docker-config-"))
            try:
                token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
                config_path = config_dir / "config.json"
                config_path.write_text(json.dumps({"auths": {self.host or DOCKER_HUB_INDEX: {"auth": token}}}))
                os.chmod(config_path, 0o600)
            except BaseException:
                shutil.rmtree(config_dir, ignore_errors=True)
                raise
            return KeyMaterial({"DOCKER_CONFIG": str(config_dir)}, cleanup=[config_dir])

        return KeyMaterialFactory(_materialize)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "credentials_id": self.credentials_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryEndpoint":
        return cls(url=data.get("url") or None, credentials_id=data.get("credentials_id") or None)


@dataclass(frozen=True)
class ServerEndpoint:
    """Docker daemon the CLI talks to; ``uri=None`` keeps the local default."""

    uri: Optional[str] = None
    credentials_id: Optional[str] = None

    def key_material_factory(self, provider: EnvCredentialsProvider) -> KeyMaterialFactory:
        def _materialize() -> KeyMaterial:
            env: Dict[str, str] = {}
            if self.uri:
                env["DOCKER_HOST"] = self.uri
            if self.credentials_id:
                env["DOCKER_TLS_VERIFY"] = "1"
                env["DOCKER_CERT_PATH"] = provider.cert_path(self.credentials_id)
            return KeyMaterial(env)

        return KeyMaterialFactory(_materialize)

    def to_dict(self) -> Dict[str, Any]:
        return {"uri": self.uri, "credentials_id": self.credentials_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerEndpoint":
        return cls(uri=data.get("uri") or None, credentials_id=data.get("credentials_id") or None)
