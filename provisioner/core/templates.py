"""Starter template catalogue.

Templates are read-only. Each one renders to the set of files the
repository step commits: the template's own files, a ``package.json``
built from its scripts and dependencies, and ``.env.local.example`` when
it declares environment variables.
"""

import json
import re
from functools import lru_cache

from pydantic import BaseModel, Field

_VARIABLE = re.compile(r"{{\s*(\w+)\s*}}")


class EnvVarExample(BaseModel):
    key: str
    description: str
    default_value: str | None = None


class StarterTemplate(BaseModel):
    """A project skeleton the repository is seeded with."""

    id: str
    name: str
    description: str
    files: dict[str, str] = Field(default_factory=dict)
    scripts: dict[str, str] = Field(default_factory=dict)
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)
    environment_variables: list[EnvVarExample] = Field(default_factory=list)


_NEXT_SCRIPTS = {
    "dev": "next dev",
    "build": "next build",
    "start": "next start",
    "lint": "next lint",
}

_NEXT_DEPENDENCIES = {
    "next": "14.2.5",
    "react": "^18",
    "react-dom": "^18",
}

_NEXT_DEV_DEPENDENCIES = {
    "typescript": "^5",
    "@types/node": "^20",
    "@types/react": "^18",
    "@types/react-dom": "^18",
    "eslint": "^8",
    "eslint-config-next": "14.2.5",
}

_TAILWIND_DEV_DEPENDENCIES = {
    "tailwindcss": "^3.4.1",
    "postcss": "^8",
    "autoprefixer": "^10",
}

_LAYOUT = """export const metadata = {
  title: "{{ projectName }}",
  description: "{{ description }}",
};

export default function RootLayout({ children }: { children: React.ReactNode }) {
  return (
    <html lang="en">
      <body>{children}</body>
    </html>
  );
}
"""

_PAGE = """export default function Home() {
  return (
    <main>
      <h1>{{ projectName }}</h1>
      <p>{{ description }}</p>
    </main>
  );
}
"""

_TSCONFIG = json.dumps(
    {
        "compilerOptions": {
            "target": "es2017",
            "lib": ["dom", "dom.iterable", "esnext"],
            "strict": True,
            "noEmit": True,
            "module": "esnext",
            "moduleResolution": "bundler",
            "jsx": "preserve",
            "incremental": True,
            "plugins": [{"name": "next"}],
            "paths": {"@/*": ["./*"]},
        },
        "include": ["next-env.d.ts", "**/*.ts", "**/*.tsx", ".next/types/**/*.ts"],
        "exclude": ["node_modules"],
    },
    indent=2,
)

_BASE_FILES = {
    "app/layout.tsx": _LAYOUT,
    "app/page.tsx": _PAGE,
    "tsconfig.json": _TSCONFIG,
    "next.config.mjs": "/** @type {import('next').NextConfig} */\nconst nextConfig = {};\n\nexport default nextConfig;\n",
    ".gitignore": "node_modules\n.next\n.env*.local\n",
}

_TAILWIND_FILES = {
    "tailwind.config.ts": (
        'import type { Config } from "tailwindcss";\n\n'
        "const config: Config = {\n"
        '  content: ["./app/**/*.{ts,tsx}", "./components/**/*.{ts,tsx}"],\n'
        "  theme: { extend: {} },\n"
        "  plugins: [],\n"
        "};\n\nexport default config;\n"
    ),
    "postcss.config.mjs": "export default { plugins: { tailwindcss: {}, autoprefixer: {} } };\n",
    "app/globals.css": "@tailwind base;\n@tailwind components;\n@tailwind utilities;\n",
}

_DATABASE_ENV = EnvVarExample(key="MONGODB_URI", description="MongoDB connection string")
_IDENTITY_ENV = [
    EnvVarExample(
        key="NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY",
        description="Clerk publishable key",
    ),
    EnvVarExample(key="CLERK_SECRET_KEY", description="Clerk secret key"),
]

TEMPLATES: dict[str, StarterTemplate] = {
    t.id: t
    for t in (
        StarterTemplate(
            id="minimal",
            name="Minimal",
            description="Bare Next.js app with the App Router and TypeScript",
            files=_BASE_FILES,
            scripts=_NEXT_SCRIPTS,
            dependencies=_NEXT_DEPENDENCIES,
            dev_dependencies=_NEXT_DEV_DEPENDENCIES,
        ),
        StarterTemplate(
            id="nextjs-shadcn",
            name="Next.js + shadcn/ui",
            description="Next.js with Tailwind CSS and shadcn/ui primitives",
            files={
                **_BASE_FILES,
                **_TAILWIND_FILES,
                "components.json": json.dumps(
                    {
                        "style": "default",
                        "rsc": True,
                        "tsx": True,
                        "tailwind": {"config": "tailwind.config.ts", "css": "app/globals.css"},
                        "aliases": {"components": "@/components", "utils": "@/lib/utils"},
                    },
                    indent=2,
                ),
                "lib/utils.ts": (
                    'import { clsx, type ClassValue } from "clsx";\n'
                    'import { twMerge } from "tailwind-merge";\n\n'
                    "export function cn(...inputs: ClassValue[]) {\n"
                    "  return twMerge(clsx(inputs));\n"
                    "}\n"
                ),
            },
            scripts=_NEXT_SCRIPTS,
            dependencies={
                **_NEXT_DEPENDENCIES,
                "class-variance-authority": "^0.7.0",
                "clsx": "^2.1.1",
                "tailwind-merge": "^2.4.0",
                "lucide-react": "^0.400.0",
            },
            dev_dependencies={**_NEXT_DEV_DEPENDENCIES, **_TAILWIND_DEV_DEPENDENCIES},
        ),
        StarterTemplate(
            id="nextjs-blog",
            name="Next.js Blog",
            description="Markdown blog with Tailwind typography",
            files={
                **_BASE_FILES,
                **_TAILWIND_FILES,
                "posts/hello-world.md": "---\ntitle: Hello from {{ projectName }}\n---\n\nFirst post.\n",
            },
            scripts=_NEXT_SCRIPTS,
            dependencies={**_NEXT_DEPENDENCIES, "gray-matter": "^4.0.3", "remark": "^15.0.1"},
            dev_dependencies={
                **_NEXT_DEV_DEPENDENCIES,
                **_TAILWIND_DEV_DEPENDENCIES,
                "@tailwindcss/typography": "^0.5.13",
            },
        ),
        StarterTemplate(
            id="nextjs-saas",
            name="Next.js SaaS",
            description="SaaS starter with authentication and a database",
            files={**_BASE_FILES, **_TAILWIND_FILES},
            scripts=_NEXT_SCRIPTS,
            dependencies={
                **_NEXT_DEPENDENCIES,
                "@clerk/nextjs": "^5.2.0",
                "mongodb": "^6.8.0",
            },
            dev_dependencies={**_NEXT_DEV_DEPENDENCIES, **_TAILWIND_DEV_DEPENDENCIES},
            environment_variables=[_DATABASE_ENV, *_IDENTITY_ENV],
        ),
        StarterTemplate(
            id="nextjs-ecommerce",
            name="Next.js Commerce",
            description="Storefront with product catalogue and checkout",
            files={
                **_BASE_FILES,
                **_TAILWIND_FILES,
                "app/products/page.tsx": (
                    "export default function Products() {\n"
                    "  return <h1>{{ projectName }} products</h1>;\n"
                    "}\n"
                ),
            },
            scripts=_NEXT_SCRIPTS,
            dependencies={**_NEXT_DEPENDENCIES, "mongodb": "^6.8.0", "stripe": "^16.2.0"},
            dev_dependencies={**_NEXT_DEV_DEPENDENCIES, **_TAILWIND_DEV_DEPENDENCIES},
            environment_variables=[
                _DATABASE_ENV,
                EnvVarExample(key="STRIPE_SECRET_KEY", description="Stripe secret key"),
            ],
        ),
    )
}


def substitute(content: str, variables: dict[str, str]) -> str:
    """Replace ``{{ key }}`` placeholders; unknown keys are left as they are."""
    return _VARIABLE.sub(lambda m: variables.get(m.group(1), m.group(0)), content)


class TemplateCatalogue:
    """Lookup and rendering over the built-in templates."""

    def __init__(self, templates: dict[str, StarterTemplate] | None = None):
        self._templates = dict(templates or TEMPLATES)

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def ids(self) -> list[str]:
        return sorted(self._templates)

    def list_templates(self) -> list[StarterTemplate]:
        return [self._templates[tid] for tid in self.ids()]

    def get_template(self, template_id: str) -> StarterTemplate | None:
        return self._templates.get(template_id)

    def render(self, template_id: str, variables: dict[str, str]) -> dict[str, str]:
        """Produce ``{path: content}`` for every file the template seeds."""
        template = self._templates.get(template_id)
        if template is None:
            raise KeyError(template_id)

        files = {path: substitute(content, variables) for path, content in template.files.items()}

        package = {
            "name": variables.get("projectName", template.id),
            "version": "0.1.0",
            "private": True,
            "scripts": template.scripts,
            "dependencies": template.dependencies,
            "devDependencies": template.dev_dependencies,
        }
        files["package.json"] = json.dumps(package, indent=2) + "\n"

        if template.environment_variables:
            files[".env.local.example"] = "\n\n".join(
                f"# {var.description}\n{var.key}={var.default_value or 'your_value_here'}"
                for var in template.environment_variables
            ) + "\n"

        return files


@lru_cache
def get_template_catalogue() -> TemplateCatalogue:
    """Get the template catalogue singleton."""
    return TemplateCatalogue()
