"""Query-parameter filters for the discovery endpoints."""

from cigateway.ci_adapters.concourse.resources import Pipeline, PipelineJob


def parse_bool_param(value: str | None) -> bool | None:
    """``true``/``1`` and ``false``/``0``; anything else means "no filter"."""
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    return None


def filter_pipelines(
    pipelines: list[Pipeline],
    search: str | None = None,
    paused: bool | None = None,
    archived: bool | None = None,
) -> list[Pipeline]:
    if not search and paused is None and archived is None:
        return pipelines

    needle = (search or "").lower()
    return [
        p
        for p in pipelines
        if needle in p.name.lower()
        and (paused is None or p.paused == paused)
        and (archived is None or p.archived == archived)
    ]


def filter_jobs(
    jobs: list[PipelineJob],
    search: str | None = None,
    paused: bool | None = None,
) -> list[PipelineJob]:
    if not search and paused is None:
        return jobs

    needle = (search or "").lower()
    return [
        j
        for j in jobs
        if needle in j.name.lower() and (paused is None or j.paused == paused)
    ]
