"""Unit tests for data models."""

import json

import pytest
from pydantic import TypeAdapter, ValidationError

from provisioner.core.exceptions import InvalidStepTransitionError, ResourceAlreadySetError
from provisioner.models import (
    DEPLOYMENT_EVENT_STEP,
    DeploymentResources,
    DeploymentStatus,
    FeatureToggles,
    GitHubAppCredentials,
    GitHubCredentials,
    GitHubTokenCredentials,
    ProgressEvent,
    RepositoryResources,
    Step,
    StepId,
    StepStatus,
)


class TestStep:
    """Tests for Step transitions."""

    @pytest.fixture
    def step(self) -> Step:
        return Step(id=StepId.REPOSITORY, label="Create GitHub repository", required=True)

    def test_starts_pending(self, step: Step):
        assert step.status == StepStatus.PENDING
        assert step.started_at is None
        assert step.completed_at is None

    def test_in_progress_sets_started_at(self, step: Step):
        step.apply({"status": StepStatus.IN_PROGRESS, "message": "Working"})

        assert step.status == StepStatus.IN_PROGRESS
        assert step.started_at is not None
        assert step.message == "Working"

    def test_completed_sets_duration(self, step: Step):
        step.apply({"status": StepStatus.IN_PROGRESS})
        step.apply({"status": StepStatus.COMPLETED})

        assert step.completed_at is not None
        assert step.completed_at >= step.started_at
        assert step.duration_ms is not None and step.duration_ms >= 0

    def test_accepts_string_status(self, step: Step):
        step.apply({"status": "in-progress"})
        assert step.status == StepStatus.IN_PROGRESS

    def test_skipped_from_pending(self, step: Step):
        step.apply({"status": StepStatus.SKIPPED, "message": "Not configured"})

        assert step.status == StepStatus.SKIPPED
        assert step.status.is_terminal
        assert step.started_at is None

    @pytest.mark.parametrize(
        "path",
        [
            [StepStatus.IN_PROGRESS, StepStatus.COMPLETED, StepStatus.IN_PROGRESS],
            [StepStatus.IN_PROGRESS, StepStatus.ERROR, StepStatus.COMPLETED],
            [StepStatus.IN_PROGRESS, StepStatus.PENDING],
            [StepStatus.COMPLETED],
            [StepStatus.IN_PROGRESS, StepStatus.SKIPPED],
            [StepStatus.SKIPPED, StepStatus.IN_PROGRESS],
        ],
    )
    def test_rejects_invalid_transitions(self, step: Step, path: list[StepStatus]):
        *allowed, rejected = path
        for status in allowed:
            step.apply({"status": status})

        with pytest.raises(InvalidStepTransitionError) as exc_info:
            step.apply({"status": rejected})

        assert exc_info.value.details["step_id"] == "repository"
        expected = allowed[-1] if allowed else StepStatus.PENDING
        assert step.status == expected

    def test_same_status_is_allowed(self, step: Step):
        step.apply({"status": StepStatus.IN_PROGRESS})
        step.apply({"status": StepStatus.IN_PROGRESS, "message": "Still working"})

        assert step.message == "Still working"


class TestDeploymentResources:
    """Tests for write-once resources."""

    @pytest.fixture
    def repo(self) -> RepositoryResources:
        return RepositoryResources(
            url="https://github.com/octo/app",
            clone_url="https://github.com/octo/app.git",
            full_name="octo/app",
        )

    def test_contribute(self, repo: RepositoryResources):
        resources = DeploymentResources()
        resources.contribute(StepId.REPOSITORY, repo)

        assert resources.repository == repo
        assert resources.hosting is None

    def test_contribute_twice_rejected(self, repo: RepositoryResources):
        resources = DeploymentResources()
        resources.contribute("repository", repo)

        with pytest.raises(ResourceAlreadySetError):
            resources.contribute("repository", repo)

    def test_unknown_section(self, repo: RepositoryResources):
        with pytest.raises(ValueError):
            DeploymentResources().contribute("billing", repo)


class TestProgressEvent:
    """Tests for ProgressEvent."""

    def test_step_event_is_not_terminal(self):
        event = ProgressEvent(deployment_id="dep_1", step_id="hosting", status="completed")
        assert not event.is_terminal

    @pytest.mark.parametrize("status", ["completed", "failed"])
    def test_deployment_event_is_terminal(self, status: str):
        event = ProgressEvent(deployment_id="dep_1", step_id=DEPLOYMENT_EVENT_STEP, status=status)
        assert event.is_terminal

    def test_deployment_in_progress_is_not_terminal(self):
        event = ProgressEvent(
            deployment_id="dep_1", step_id=DEPLOYMENT_EVENT_STEP, status="in-progress"
        )
        assert not event.is_terminal

    def test_to_line(self):
        event = ProgressEvent(
            deployment_id="dep_1",
            step_id="repository",
            status="in-progress",
            message="Creating",
            data={"n": 1},
        )
        line = event.to_line()

        assert "\n" not in line
        payload = json.loads(line)
        assert payload["deployment_id"] == "dep_1"
        assert payload["step_id"] == "repository"
        assert payload["data"] == {"n": 1}


class TestStatuses:
    def test_deployment_terminal(self):
        assert DeploymentStatus.COMPLETED.is_terminal
        assert DeploymentStatus.FAILED.is_terminal
        assert not DeploymentStatus.PENDING.is_terminal
        assert not DeploymentStatus.IN_PROGRESS.is_terminal

    def test_step_terminal(self):
        assert {s for s in StepStatus if s.is_terminal} == {
            StepStatus.COMPLETED,
            StepStatus.ERROR,
            StepStatus.SKIPPED,
        }


class TestConfigModels:
    def test_github_credentials_discriminated(self):
        adapter = TypeAdapter(GitHubCredentials)

        token = adapter.validate_python({"kind": "token", "token": "ghp_x", "owner": "octo"})
        app = adapter.validate_python(
            {
                "kind": "app",
                "app_id": "1",
                "private_key": "pem",
                "installation_id": "2",
                "owner": "octo-org",
            }
        )

        assert isinstance(token, GitHubTokenCredentials)
        assert isinstance(app, GitHubAppCredentials)

    def test_feature_defaults(self):
        features = FeatureToggles()
        assert features.database and features.identity and features.cloud
        assert not features.custom_domain

    def test_custom_domain_requires_toggle(self, make_config):
        assert make_config(domain="example.com").custom_domain is None
        enabled = make_config(domain="example.com", features=FeatureToggles(custom_domain=True))
        assert enabled.custom_domain == "example.com"

    def test_config_is_frozen(self, make_config):
        config = make_config()
        with pytest.raises(ValidationError):
            config.project_name = "other"
