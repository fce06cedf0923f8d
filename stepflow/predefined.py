"""Built-in workflow definitions installed by ``stepflow init``."""

from __future__ import annotations

import json
from typing import Any

_PACKAGE_JSON = json.dumps(
    {
        "name": "{{projectName}}",
        "version": "1.0.0",
        "description": "{{projectDescription}}",
        "main": "index.js",
        "scripts": {"start": "node index.js", "test": "jest"},
    },
    indent=2,
)

CREATE_PROJECT: dict[str, Any] = {
    "description": "Complete project creation workflow",
    "steps": [
        {
            "name": "Create Directory",
            "kind": "command",
            "command": "mkdir -p {{projectName}}",
            "onError": "stop",
        },
        {
            "name": "Initialize Git",
            "kind": "command",
            "command": "git init",
            "cwd": "{{projectName}}",
            "onError": "continue",
        },
        {
            "name": "Create Package.json",
            "kind": "file",
            "operation": {
                "operation": "write",
                "path": "{{projectName}}/package.json",
                "content": _PACKAGE_JSON,
            },
        },
        {
            "name": "Install Dependencies",
            "kind": "command",
            "command": "npm install",
            "cwd": "{{projectName}}",
            "onError": "continue",
        },
        {
            "name": "Create README",
            "kind": "file",
            "operation": {
                "operation": "write",
                "path": "{{projectName}}/README.md",
                "content": (
                    "# {{projectName}}\n\n{{projectDescription}}\n\n"
                    "## Getting Started\n\n```bash\nnpm install\nnpm start\n```\n"
                ),
            },
        },
    ],
}

BUILD_DEPLOY: dict[str, Any] = {
    "description": "Build and deploy application",
    "steps": [
        {"name": "Install Dependencies", "kind": "command", "command": "npm install"},
        {"name": "Run Tests", "kind": "command", "command": "npm test"},
        {"name": "Build Application", "kind": "command", "command": "npm run build"},
        {
            "name": "Deploy to Server",
            "kind": "command",
            "command": "scp -r dist/* {{deployUser}}@{{deployHost}}:{{deployPath}}",
            "onError": "retry",
            "maxRetries": 3,
            "retryDelayMs": 5000,
        },
        {
            "name": "Restart Service",
            "kind": "command",
            "command": 'ssh {{deployUser}}@{{deployHost}} "sudo systemctl restart {{serviceName}}"',
            "onError": "continue",
        },
    ],
}

CODE_QUALITY: dict[str, Any] = {
    "description": "Run code quality checks and fixes",
    "steps": [
        {
            "name": "Checks",
            "kind": "parallel",
            "onError": "continue",
            "steps": [
                {"name": "Lint Code", "kind": "command", "command": "npm run lint", "onError": "continue"},
                {"name": "Type Check", "kind": "command", "command": "npm run type-check", "onError": "continue"},
                {"name": "Security Audit", "kind": "command", "command": "npm audit", "onError": "continue"},
            ],
        },
        {"name": "Format Code", "kind": "command", "command": "npm run format", "onError": "continue"},
        {
            "name": "Generate Report",
            "kind": "file",
            "operation": {
                "operation": "write",
                "path": "quality-report.md",
                "content": (
                    "# Code Quality Report\n\nGenerated on {{date}}\n\n## Results\n\n"
                    "- Linting: {{lintResult}}\n- Formatting: {{formatResult}}\n"
                    "- Type Check: {{typeCheckResult}}\n- Security: {{securityResult}}\n"
                ),
            },
        },
    ],
}

PREDEFINED_WORKFLOWS: dict[str, dict[str, Any]] = {
    "create-project": CREATE_PROJECT,
    "build-deploy": BUILD_DEPLOY,
    "code-quality": CODE_QUALITY,
}
