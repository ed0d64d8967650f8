"""Starter template endpoints (read-only)."""

from fastapi import APIRouter
from pydantic import BaseModel

from provisioner.api.deps import CatalogueDep
from provisioner.core.exceptions import TemplateNotFoundError
from provisioner.core.templates import EnvVarExample

router = APIRouter()


class TemplateSummary(BaseModel):
    id: str
    name: str
    description: str
    files: list[str]
    dependencies: dict[str, str]
    environment_variables: list[EnvVarExample]


@router.get("", response_model=list[TemplateSummary], summary="List starter templates")
async def list_templates(catalogue: CatalogueDep) -> list[TemplateSummary]:
    return [
        TemplateSummary(
            id=t.id,
            name=t.name,
            description=t.description,
            files=sorted(t.files),
            dependencies=t.dependencies,
            environment_variables=t.environment_variables,
        )
        for t in catalogue.list_templates()
    ]


@router.get("/{template_id}/preview", summary="Preview the files a template seeds")
async def preview_template(
    template_id: str, catalogue: CatalogueDep, project_name: str = "my-app"
) -> dict[str, str]:
    """Render a template with a sample project name."""
    if template_id not in catalogue:
        raise TemplateNotFoundError(template_id)
    return catalogue.render(
        template_id, {"projectName": project_name, "description": f"{project_name} app"}
    )
