"""Unit tests for the starter template catalogue."""

import json

import pytest

from provisioner.core.templates import TemplateCatalogue, substitute

VARIABLES = {"projectName": "my-app", "description": "A test application"}


class TestTemplateCatalogue:
    """Tests for TemplateCatalogue."""

    def test_builtin_templates(self, catalogue: TemplateCatalogue):
        assert catalogue.ids() == [
            "minimal",
            "nextjs-blog",
            "nextjs-ecommerce",
            "nextjs-saas",
            "nextjs-shadcn",
        ]
        assert "minimal" in catalogue
        assert "rails" not in catalogue

    def test_render_package_json(self, catalogue: TemplateCatalogue):
        files = catalogue.render("minimal", VARIABLES)

        package = json.loads(files["package.json"])
        assert package["name"] == "my-app"
        assert package["private"] is True
        assert package["scripts"]["build"] == "next build"
        assert "next" in package["dependencies"]
        assert "typescript" in package["devDependencies"]

    def test_render_substitutes_variables(self, catalogue: TemplateCatalogue):
        files = catalogue.render("minimal", VARIABLES)

        assert "my-app" in files["app/page.tsx"]
        assert "A test application" in files["app/layout.tsx"]
        assert "{{" not in files["app/page.tsx"]

    def test_env_example_only_when_declared(self, catalogue: TemplateCatalogue):
        minimal = catalogue.render("minimal", VARIABLES)
        saas = catalogue.render("nextjs-saas", VARIABLES)

        assert ".env.local.example" not in minimal
        env = saas[".env.local.example"]
        assert "# MongoDB connection string\nMONGODB_URI=your_value_here" in env
        assert "CLERK_SECRET_KEY=" in env

    def test_render_unknown(self, catalogue: TemplateCatalogue):
        with pytest.raises(KeyError):
            catalogue.render("rails", VARIABLES)

    def test_render_does_not_mutate_template(self, catalogue: TemplateCatalogue):
        catalogue.render("minimal", VARIABLES)
        template = catalogue.get_template("minimal")

        assert "{{ projectName }}" in template.files["app/page.tsx"]


class TestSubstitute:
    def test_whitespace_tolerant(self):
        assert substitute("{{projectName}}/{{ projectName }}", VARIABLES) == "my-app/my-app"

    def test_unknown_left_alone(self):
        assert substitute("{{ missing }}", VARIABLES) == "{{ missing }}"
