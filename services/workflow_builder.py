from __future__ import annotations

import logging

from core.graph import WorkflowGraph
from core.models import GenerationParams, WorkflowDetectionResult
from core.workflow_router import WorkflowKind, get_workflow_filename_prefix, route_workflow
from services.model_resolver import ModelResolverService, strip_provider_prefix
from workflows.common import WorkflowBuilder, WorkflowContext
from workflows.flux_dev import build_flux_dev_workflow
from workflows.flux_kontext import build_flux_kontext_workflow
from workflows.flux_schnell import build_flux_schnell_workflow
from workflows.sd35 import build_sd35_workflow
from workflows.simple_sd import build_simple_sd_workflow

logger = logging.getLogger(__name__)

WORKFLOW_BUILDERS: dict[WorkflowKind, WorkflowBuilder] = {
    WorkflowKind.FLUX_DEV: build_flux_dev_workflow,
    WorkflowKind.FLUX_SCHNELL: build_flux_schnell_workflow,
    WorkflowKind.FLUX_KONTEXT: build_flux_kontext_workflow,
    WorkflowKind.SD35: build_sd35_workflow,
    WorkflowKind.SIMPLE_SD: build_simple_sd_workflow,
}


class WorkflowBuilderService:
    def __init__(self, model_resolver: ModelResolverService) -> None:
        self.model_resolver = model_resolver

    async def build_workflow(
        self,
        model_id: str,
        detection: WorkflowDetectionResult,
        model_file_name: str,
        params: GenerationParams,
    ) -> WorkflowGraph:
        model_id = strip_provider_prefix(model_id)
        kind = route_workflow(model_id, detection)
        context = WorkflowContext(
            model_resolver=self.model_resolver,
            variant=detection.variant,
            filename_prefix=get_workflow_filename_prefix(kind, detection.variant),
        )
        logger.info("Building %s workflow for %s (%s)", kind.value, model_id, model_file_name)
        graph = await WORKFLOW_BUILDERS[kind](model_file_name, params, context)
        return graph
