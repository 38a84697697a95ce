"""
Pipeline Renderer - CI platform configuration text.

Rendering rules shared by every platform:
- timeouts are whole minutes, rounded up
- job ids are the stage name slugified (lowercase, hyphenated)
- environment entries stay scoped to their stage
- stages appear in canonical order
"""

import math
import re
from typing import Literal

import yaml

from pipeline_forge.core.schemas import GeneratedPipeline, PipelineStageConfig, sort_stages

Platform = Literal["github", "gitlab", "jenkins", "azure"]

SUPPORTED_PLATFORMS = ("github", "gitlab", "jenkins", "azure")


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "stage"


def timeout_minutes(seconds: int) -> int:
    return math.ceil(seconds / 60)


def _dump(document: dict) -> str:
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


def _unique_job_ids(stages: list[PipelineStageConfig]) -> list[str]:
    seen: dict[str, int] = {}
    ids = []
    for stage in stages:
        slug = slugify(stage.name)
        count = seen.get(slug, 0)
        seen[slug] = count + 1
        ids.append(slug if count == 0 else f"{slug}-{count + 1}")
    return ids


class PipelineRenderer:
    """Turns a ``GeneratedPipeline`` into platform-specific text."""

    def render(self, pipeline: GeneratedPipeline, platform: Platform) -> str:
        if platform not in SUPPORTED_PLATFORMS:
            raise ValueError(f"Unsupported platform: {platform}")
        return getattr(self, f"render_{platform}")(pipeline)

    # ==========================================================================
    # YAML platforms
    # ==========================================================================

    def render_github(self, pipeline: GeneratedPipeline) -> str:
        stages = sort_stages(pipeline.stages)
        jobs = {}
        previous = None
        for job_id, stage in zip(_unique_job_ids(stages), stages):
            job = {
                "name": stage.name,
                "runs-on": "ubuntu-latest",
                "timeout-minutes": timeout_minutes(stage.timeout),
            }
            if previous:
                job["needs"] = previous
            if not stage.required:
                job["continue-on-error"] = True
            if stage.environment:
                job["env"] = dict(stage.environment)
            job["steps"] = [{"uses": "actions/checkout@v4"}] + [{"run": cmd} for cmd in stage.commands]
            jobs[job_id] = job
            previous = job_id

        return _dump({
            "name": pipeline.name,
            "on": {
                "push": {"branches": ["main", "develop"]},
                "pull_request": {"branches": ["main"]},
            },
            "jobs": jobs,
        })

    def render_gitlab(self, pipeline: GeneratedPipeline) -> str:
        stages = sort_stages(pipeline.stages)
        document: dict = {"stages": list(dict.fromkeys(s.stage.value for s in stages))}
        for job_id, stage in zip(_unique_job_ids(stages), stages):
            job = {
                "stage": stage.stage.value,
                "script": list(stage.commands),
                "timeout": f"{timeout_minutes(stage.timeout)}m",
            }
            if stage.environment:
                job["variables"] = dict(stage.environment)
            if stage.retry_config.max_attempts > 1:
                job["retry"] = min(stage.retry_config.max_attempts - 1, 2)
            if not stage.required:
                job["allow_failure"] = True
            document[job_id] = job
        return _dump(document)

    def render_azure(self, pipeline: GeneratedPipeline) -> str:
        stages = sort_stages(pipeline.stages)
        jobs = []
        previous = None
        for job_id, stage in zip(_unique_job_ids(stages), stages):
            job = {
                "job": job_id.replace("-", "_"),
                "displayName": stage.name,
                "timeoutInMinutes": timeout_minutes(stage.timeout),
            }
            if previous:
                job["dependsOn"] = previous
            if not stage.required:
                job["continueOnError"] = True
            if stage.environment:
                job["variables"] = dict(stage.environment)
            job["steps"] = [{"script": cmd, "displayName": cmd} for cmd in stage.commands]
            jobs.append(job)
            previous = job["job"]

        return _dump({
            "trigger": {"branches": {"include": ["main", "develop"]}},
            "pool": {"vmImage": "ubuntu-latest"},
            "jobs": jobs,
        })

    # ==========================================================================
    # Jenkins
    # ==========================================================================

    def render_jenkins(self, pipeline: GeneratedPipeline) -> str:
        lines = ["pipeline {", "    agent any", "", "    stages {"]
        for stage in sort_stages(pipeline.stages):
            lines.append(f"        stage('{_groovy_escape(stage.name)}') {{")
            if stage.environment:
                lines.append("            environment {")
                for key, value in stage.environment.items():
                    lines.append(f"                {key} = '{_groovy_escape(value)}'")
                lines.append("            }")
            lines.append("            steps {")
            lines.append(f"                timeout(time: {timeout_minutes(stage.timeout)}, unit: 'MINUTES') {{")
            for command in stage.commands:
                lines.append(f"                    sh '{_groovy_escape(command)}'")
            lines.append("                }")
            lines.append("            }")
            lines.append("        }")
        lines += ["    }", "", "    post {", "        always {", "            cleanWs()", "        }", "    }", "}", ""]
        return "\n".join(lines)


def _groovy_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")
