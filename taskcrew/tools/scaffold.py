"""Project skeleton generation for bootstrap goals."""

import json
from pathlib import Path
from typing import Callable, Dict, List

from ..errors import CapabilityError

TEMPLATES = ("react", "express", "fullstack")


def _package_json(name: str, description: str, scripts: dict, deps: dict, dev_deps: dict) -> str:
    return json.dumps({
        "name": name,
        "version": "0.1.0",
        "private": True,
        "description": description,
        "scripts": scripts,
        "dependencies": deps,
        "devDependencies": dev_deps,
    }, indent=2) + "\n"


def react_files(name: str, description: str) -> Dict[str, str]:
    return {
        "package.json": _package_json(
            name, description,
            {"dev": "vite", "build": "tsc && vite build", "test": "vitest run"},
            {"react": "^18.3.1", "react-dom": "^18.3.1"},
            {"@vitejs/plugin-react": "^4.3.1", "typescript": "^5.5.4",
             "vite": "^5.4.0", "vitest": "^2.0.5"},
        ),
        "index.html": (
            "<!doctype html>\n<html>\n  <head><title>" + name + "</title></head>\n"
            "  <body>\n    <div id=\"root\"></div>\n"
            "    <script type=\"module\" src=\"/src/main.tsx\"></script>\n  </body>\n</html>\n"
        ),
        "src/main.tsx": (
            "import React from 'react';\nimport ReactDOM from 'react-dom/client';\n"
            "import App from './App';\n\n"
            "ReactDOM.createRoot(document.getElementById('root')!).render(<App />);\n"
        ),
        "src/App.tsx": (
            "export default function App() {\n"
            f"  return <h1>{name}</h1>;\n"
            "}\n"
        ),
        "tsconfig.json": json.dumps({
            "compilerOptions": {"target": "ES2020", "jsx": "react-jsx", "strict": True,
                                "module": "ESNext", "moduleResolution": "bundler"},
            "include": ["src"],
        }, indent=2) + "\n",
    }


def express_files(name: str, description: str) -> Dict[str, str]:
    return {
        "package.json": _package_json(
            name, description,
            {"dev": "tsx watch src/index.ts", "build": "tsc", "start": "node dist/index.js",
             "test": "vitest run"},
            {"express": "^4.19.2", "cors": "^2.8.5"},
            {"@types/express": "^4.17.21", "tsx": "^4.16.2", "typescript": "^5.5.4",
             "vitest": "^2.0.5", "supertest": "^7.0.0"},
        ),
        "src/app.ts": (
            "import express from 'express';\nimport cors from 'cors';\n\n"
            "export const app = express();\napp.use(cors());\napp.use(express.json());\n\n"
            "app.get('/health', (_req, res) => {\n  res.json({ status: 'ok' });\n});\n"
        ),
        "src/index.ts": (
            "import { app } from './app';\n\nconst port = Number(process.env.PORT ?? 3000);\n"
            "app.listen(port, () => console.log(`listening on ${port}`));\n"
        ),
        "tsconfig.json": json.dumps({
            "compilerOptions": {"target": "ES2020", "module": "commonjs", "strict": True,
                                "outDir": "dist", "esModuleInterop": True},
            "include": ["src"],
        }, indent=2) + "\n",
    }


_GENERATORS: Dict[str, Callable[[str, str], Dict[str, str]]] = {
    "react": react_files,
    "express": express_files,
}


class ProjectScaffolder:
    """Writes a template skeleton into ``<workspace>/<project_name>``."""

    def __init__(self, workspace: str):
        self.workspace = Path(workspace).resolve()

    def _files_for(self, template: str, name: str, description: str) -> Dict[str, str]:
        if template == "fullstack":
            files = {}
            for part, sub in (("frontend", "react"), ("backend", "express")):
                for rel, content in _GENERATORS[sub](f"{name}-{part}", description).items():
                    files[f"{part}/{rel}"] = content
            return files
        if template not in _GENERATORS:
            raise CapabilityError(
                "generate_project",
                f"Template '{template}' not found. Available: {', '.join(TEMPLATES)}",
            )
        return _GENERATORS[template](name, description)

    def generate(self, template: str, project_name: str, description: str = "") -> str:
        if not template or not project_name:
            raise CapabilityError("generate_project", "template and projectName are required")
        if "/" in project_name or "\\" in project_name or project_name.startswith("."):
            raise CapabilityError("generate_project", f"Invalid project name: {project_name}")

        project_dir = self.workspace / project_name
        created: List[str] = []
        for rel, content in self._files_for(template, project_name, description or project_name).items():
            target = project_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            created.append(rel)

        listing = "\n".join(f"  {rel}" for rel in created)
        return (
            f"Generated {template} project '{project_name}' with {len(created)} files:\n"
            f"{listing}\n"
            f"Project created at: {project_name}"
        )
