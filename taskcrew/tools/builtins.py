"""Built-in capability set and the role tags each capability carries."""

from typing import List, Optional

from ..docs import DocsStore
from ..errors import CapabilityError
from .deploy import DeploymentGenerator, LocalDeployer, check_health
from .file_ops import FileOps
from .git_ops import GitOps
from .registry import Capability, CapabilityRegistry, CapabilityResult, _I, _S
from .scaffold import ProjectScaffolder
from .shell import ShellExecutor

IMPLEMENTERS = ("dev", "frontend", "backend")
WRITERS = IMPLEMENTERS + ("qa", "devops", "incident")
RUNNERS = IMPLEMENTERS + ("qa", "devops", "incident")


def build_default_registry(
    project_root: str,
    docs: Optional[DocsStore] = None,
    blocked_commands: Optional[List[str]] = None,
    command_timeout: int = 120,
    commit_prefix: str = "taskcrew: ",
    extra: Optional[List[Capability]] = None,
) -> CapabilityRegistry:
    """Register every built-in capability. ``extra`` holds host-provided ones
    such as cloud deploy capabilities."""
    f = FileOps(project_root)
    shell = ShellExecutor(project_root, blocked_commands, command_timeout)
    git = GitOps(project_root, commit_prefix=commit_prefix)
    scaffolder = ProjectScaffolder(project_root)
    deployer = DeploymentGenerator(project_root)
    local = LocalDeployer(shell)
    C = Capability

    def run_command(command: str) -> CapabilityResult:
        output, code = shell.run(command)
        if code != 0:
            return CapabilityResult(False, output=output, error=f"exit code {code}: {output[-500:]}")
        return CapabilityResult(True, output=output)

    def git_commit(message: str) -> str:
        commit = git.commit(message)
        if commit is None:
            raise CapabilityError("git_commit", "nothing to commit")
        return f"Committed {commit}"

    registry = CapabilityRegistry([
        # ── Files ──
        C("read_file",
          "Read file contents with line numbers. Supports optional line range.",
          {"path": _S("File path relative to project root"),
           "start_line": _I("Start line (1-indexed)"),
           "end_line": _I("End line (inclusive)")},
          ["path"],
          lambda **a: f.read_file(a["path"], a.get("start_line"), a.get("end_line"))),
        C("write_file", "Create or overwrite a file with the full content.",
          {"path": _S("File path"), "content": _S("Full file content")},
          ["path", "content"],
          lambda **a: f.write_file(a["path"], a["content"]),
          allowed_roles=WRITERS),
        C("list_directory", "List files and directories in tree format.",
          {"path": _S("Directory path (default: .)", default="."),
           "max_depth": _I("Max depth (default 3)", default=3)},
          [],
          lambda **a: f.list_directory(a.get("path", "."), a.get("max_depth", 3))),

        # ── Execution ──
        C("run_command", "Execute a bash command in the project root.",
          {"command": _S("Bash command to run")},
          ["command"], run_command,
          allowed_roles=RUNNERS),
        C("git_status", "Show short git status of the project.",
          {}, [], lambda **a: git.status_short()),
        C("git_commit", "Stage changed non-secret files and commit them.",
          {"message": _S("Commit message")},
          ["message"], git_commit,
          allowed_roles=IMPLEMENTERS + ("devops",)),

        # ── Scaffolding and deployment ──
        C("generate_project",
          "Generate a project scaffold from a template: react (frontend), express (backend) "
          "or fullstack (both). Creates a subdirectory named after the project.",
          {"template": _S("Template: react, express or fullstack"),
           "projectName": _S("Project directory name"),
           "description": _S("Short project description")},
          ["template", "projectName"],
          lambda **a: scaffolder.generate(a["template"], a["projectName"], a.get("description", "")),
          allowed_roles=IMPLEMENTERS),
        C("generate_deployment",
          "Create a Dockerfile and docker-compose.yml for a Node.js project directory.",
          {"path": _S("Project directory (default: .)", default="."),
           "port": _I("Service port (default 3000)", default=3000),
           "health_path": _S("Health endpoint path (default /health)", default="/health")},
          [],
          lambda **a: deployer.generate(a.get("path", "."), a.get("port", 3000),
                                        a.get("health_path", "/health")),
          allowed_roles=("dev", "backend", "devops")),
        C("deploy_local", "Build and start the project's containers with docker compose.",
          {"path": _S("Project directory containing docker-compose.yml")},
          ["path"], lambda **a: local.deploy(a["path"]),
          allowed_roles=("devops", "incident")),
        C("check_health", "HTTP GET a URL and verify the status code.",
          {"url": _S("URL to check"),
           "expected_status": _I("Expected HTTP status (default 200)", default=200)},
          ["url"],
          lambda **a: check_health(a["url"], a.get("expected_status", 200)),
          allowed_roles=("qa", "devops", "monitor", "incident")),
    ] + list(extra or []))

    if docs is not None:
        registry.register(C(
            "read_docs", "Read a documentation page by path, e.g. designs/login-page.",
            {"path": _S("Page path without .md")}, ["path"],
            lambda **a: _read_doc(docs, a["path"])))
        registry.register(C(
            "write_docs", "Write a documentation page (overwrites).",
            {"path": _S("Page path without .md"), "content": _S("Markdown content"),
             "title": _S("Optional page title")},
            ["path", "content"],
            lambda **a: f"Wrote to docs/{docs.write_page(a['path'], a['content'], a.get('title')).path}",
            allowed_roles=("pm",) + IMPLEMENTERS + ("qa",)))
    return registry


def _read_doc(docs: DocsStore, path: str) -> str:
    page = docs.read_page(path)
    if page is None:
        raise CapabilityError("read_docs", f"No such page: {path}")
    return page.content
