"""Container deployment files, local deploys and HTTP health checks."""

import shlex
from pathlib import Path

import requests
import yaml

from ..errors import CapabilityError
from ..logger import get_logger
from .shell import ShellExecutor

_log = get_logger(__name__)

DOCKERFILE_TEMPLATE = """\
FROM {base_image} AS builder
WORKDIR /usr/src/app
COPY package*.json ./
RUN npm ci
COPY . .
RUN npm run build --if-present

FROM {base_image}
WORKDIR /usr/src/app
COPY package*.json ./
RUN npm ci --omit=dev
COPY --from=builder /usr/src/app/dist ./dist
EXPOSE {port}
HEALTHCHECK --interval=30s --timeout=10s --retries=3 \\
  CMD wget -qO- http://localhost:{port}{health_path} || exit 1
CMD ["node", "{entry_point}"]
"""


def compose_document(service: str, port: int, health_path: str) -> dict:
    return {
        "services": {
            service: {
                "build": ".",
                "ports": [f"{port}:{port}"],
                "environment": {"NODE_ENV": "production", "PORT": str(port)},
                "restart": "unless-stopped",
                "healthcheck": {
                    "test": ["CMD", "wget", "-qO-", f"http://localhost:{port}{health_path}"],
                    "interval": "30s",
                    "timeout": "10s",
                    "retries": 3,
                },
            }
        }
    }


class DeploymentGenerator:
    def __init__(self, project_root: str):
        self.project_root = Path(project_root).resolve()

    def _target_dir(self, path: str) -> Path:
        target = (self.project_root / (path or ".")).resolve()
        try:
            target.relative_to(self.project_root)
        except ValueError:
            raise CapabilityError("generate_deployment", f"'{path}' is outside project root")
        if not target.is_dir():
            raise CapabilityError("generate_deployment", f"Not a directory: {path}")
        return target

    def generate(self, path: str = ".", port: int = 3000, health_path: str = "/health",
                 entry_point: str = "dist/index.js",
                 base_image: str = "node:20-alpine") -> str:
        target = self._target_dir(path)
        service = target.name.lower().replace("_", "-") or "app"

        dockerfile = DOCKERFILE_TEMPLATE.format(
            base_image=base_image, port=port, health_path=health_path, entry_point=entry_point,
        )
        (target / "Dockerfile").write_text(dockerfile, encoding="utf-8")
        with open(target / "docker-compose.yml", "w", encoding="utf-8") as f:
            yaml.safe_dump(compose_document(service, port, health_path), f, sort_keys=False)

        rel = target.relative_to(self.project_root)
        return (
            f"Dockerfile created at {rel / 'Dockerfile'}\n"
            f"Compose file created at {rel / 'docker-compose.yml'} (service '{service}', port {port})"
        )


class LocalDeployer:
    """``docker compose up`` in a project directory through the guarded shell."""

    def __init__(self, shell: ShellExecutor):
        self.shell = shell

    def deploy(self, path: str = ".") -> str:
        output, code = self.shell.run(f"cd {shlex.quote(path)} && docker compose up -d --build")
        if code != 0:
            raise CapabilityError("deploy_local", output)
        return f"{output}\nContainer running for {path}"


def check_health(url: str, expected_status: int = 200, timeout: float = 10) -> str:
    """GET ``url`` and compare the status code; raises CapabilityError when unhealthy."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise CapabilityError("check_health", f"{url} unreachable: {e}") from e

    if response.status_code != expected_status:
        raise CapabilityError(
            "check_health",
            f"{url} returned {response.status_code}, expected {expected_status}",
        )
    _log.info("Health check passed: %s", url)
    return f"Healthy: {url} returned {response.status_code}"
