"""
Routes generated chunks through their step's compiler kind.

All three supported kinds are rendered client side, so routing only checks the
kind and the payload shape.
"""

from typing import Callable, Dict

from lecturecast.agents.core.interfaces import IChunkValidator
from lecturecast.agents.generation.exceptions import ChunkValidationError, UnknownCompilerError
from lecturecast.logging_config import get_logger
from lecturecast.models.lecture import ActionBatch

logger = get_logger(__name__)


def _passthrough(chunk: ActionBatch) -> ActionBatch:
    return chunk


class CompilerRouter(IChunkValidator):
    def __init__(self):
        self.routes: Dict[str, Callable[[ActionBatch], ActionBatch]] = {
            'js': _passthrough,
            'latex': _passthrough,
            'wasm-py': _passthrough,
        }

    def validate(self, artifact: ActionBatch, compiler: str) -> ActionBatch:
        logger.debug(f"[COMPILER] Routing step {artifact.stepId} to {compiler}")
        route = self.routes.get(compiler)
        if route is None:
            raise UnknownCompilerError(compiler, context={'step_id': artifact.stepId})
        if not artifact.actions:
            raise ChunkValidationError(
                f"Chunk for step {artifact.stepId} has no actions",
                context={'step_id': artifact.stepId}
            )
        for index, action in enumerate(artifact.actions):
            if not action.op:
                raise ChunkValidationError(
                    f"Action {index} of step {artifact.stepId} has no op",
                    context={'step_id': artifact.stepId, 'action_index': index}
                )
        return route(artifact)
