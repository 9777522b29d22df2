"""
Orchestrator for lecture generation.

Three queues drive the work:
- plan: resolve a plan for a query (cache first) and kick off generation
- parallel-generate: fan out every step with a staggered start
- gen: legacy one-step-at-a-time prefetch and paced emission
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Optional

from lecturecast.agents.core.interfaces import GenerationCollaborators
from lecturecast.agents.domain.models import (
    GenerationTask, Job, LegacyMode, ParallelGenerationJob, PlanJob, SequentialGenerationJob
)
from lecturecast.agents.generation.circuit_breaker import CircuitBreaker
from lecturecast.agents.generation.exceptions import (
    CacheError, CircuitOpenError, PlanGenerationError, SessionNotFoundError
)
from lecturecast.agents.generation.performance_monitor import PerformanceMonitor
from lecturecast.agents.generation.retry_policy import NO_RETRY, RetryPolicy
from lecturecast.agents.generation.step_generator import StepGenerator
from lecturecast.agents.generation.work_queue import WorkerPool, WorkQueue
from lecturecast.agents.persistence.cache import CacheStore
from lecturecast.agents.persistence.session_store import SessionStore
from lecturecast.config import (
    GEN_QUEUE_NAME, PARALLEL_GEN_QUEUE_NAME, PLAN_QUEUE_NAME, Settings
)
from lecturecast.logging_config import bind_context, get_logger, reset_context
from lecturecast.models.events import (
    GenerationProgressPayload, PlanPayload, ProgressPayload, RenderedPayload, StatusPayload
)
from lecturecast.models.lecture import ActionBatch, Plan, PlanStep, TTSConfig
from lecturecast.models.pacing import estimate_playback
from lecturecast.services.delivery_channel import DeliveryChannel, Subscriber

logger = get_logger(__name__)


class LectureOrchestrator:
    """Owns the queues and worker pools; every dependency is passed in."""

    def __init__(
        self,
        cache: CacheStore,
        sessions: SessionStore,
        channel: DeliveryChannel,
        collaborators: GenerationCollaborators,
        settings: Settings,
        monitor: Optional[PerformanceMonitor] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.cache = cache
        self.sessions = sessions
        self.channel = channel
        self.collaborators = collaborators
        self.settings = settings
        self.monitor = monitor or PerformanceMonitor()
        self.breaker = breaker or CircuitBreaker(
            "plan-generation",
            failure_threshold=settings.generation.breaker_failure_threshold,
            reset_timeout=settings.generation.breaker_reset_timeout,
        )

        gen = settings.generation
        self.step_generator = StepGenerator(
            collaborators,
            visuals_per_step=gen.visuals_per_step,
            enable_notes=gen.enable_notes,
            enable_narration=gen.enable_narration,
        )

        q = settings.queue
        job_policy = RetryPolicy(attempts=q.attempts, base_delay=q.backoff_base, max_delay=q.backoff_max)
        retention = dict(
            keep_completed_seconds=q.keep_completed_seconds,
            keep_completed_count=q.keep_completed_count,
            keep_failed_seconds=q.keep_failed_seconds,
        )
        self.plan_queue: WorkQueue[PlanJob] = WorkQueue(PLAN_QUEUE_NAME, job_policy, **retention)
        self.gen_queue: WorkQueue[SequentialGenerationJob] = WorkQueue(GEN_QUEUE_NAME, job_policy, **retention)
        # Steps inside a parallel job already isolate their failures, and visual
        # calls retry on their own, so the job itself runs once.
        self.parallel_queue: WorkQueue[ParallelGenerationJob] = WorkQueue(PARALLEL_GEN_QUEUE_NAME, NO_RETRY, **retention)

        self.plan_queue.on_failed(self._on_plan_failed)
        self.gen_queue.on_failed(self._on_sequential_failed)
        self.parallel_queue.on_failed(self._on_parallel_failed)

        self.pools: List[WorkerPool] = [
            WorkerPool(self.plan_queue, self._process_plan, q.plan_concurrency),
            WorkerPool(self.gen_queue, self._process_sequential, q.generation_concurrency),
            WorkerPool(self.parallel_queue, self._process_parallel, q.generation_concurrency),
        ]
        # Caps simultaneously running step tasks across all sessions
        self._step_slots = asyncio.Semaphore(q.generation_concurrency)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        for pool in self.pools:
            pool.start()
        logger.info("[ORCH] Orchestrator started")

    async def close(self) -> None:
        for pool in self.pools:
            await pool.close()
        logger.info("[ORCH] Orchestrator stopped")

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def submit_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> str:
        session_id = session_id or uuid.uuid4().hex
        await self.sessions.set_query(session_id, query)
        if params:
            await self.sessions.set_params(session_id, params)
        job = self.plan_queue.add('plan', PlanJob(query=query, session_id=session_id))
        logger.info(f"[ORCH] Plan job {job.id} queued for session {session_id}")
        return session_id

    async def update_params(self, session_id: str, params: Dict[str, Any]) -> None:
        await self.sessions.set_params(session_id, params)

    async def trigger_next_step(self, session_id: str) -> bool:
        """Queue emission of the session's current step (sequential mode)."""
        plan = await self.sessions.get_plan(session_id)
        query = await self.sessions.get_query(session_id)
        if plan is None or query is None:
            raise SessionNotFoundError(session_id)

        index = await self.sessions.get_current_step(session_id)
        if index >= len(plan.steps):
            logger.info(f"[ORCH] Session {session_id} has no steps left")
            return False

        step = plan.steps[index]
        self.gen_queue.add(
            'emit',
            SequentialGenerationJob(step=step, session_id=session_id, plan=plan, query=query, mode=LegacyMode.EMIT),
            job_id=f"{session_id}:emit:{step.id}",
        )
        return True

    async def handle_join(self, subscriber: Subscriber, session_id: str) -> None:
        self.channel.join(subscriber, session_id)
        if not self.settings.playback.replay_on_join:
            return

        plan = await self.sessions.get_plan(session_id)
        if plan is None:
            return
        self.channel.send_to(subscriber, session_id, 'plan', self._plan_payload(plan))
        chunks = await self.sessions.get_chunks(session_id, plan)
        for chunk in chunks:
            step = plan.steps[chunk.stepId]
            self.channel.send_to(subscriber, session_id, 'rendered', self._rendered_payload(plan, step, chunk))
        logger.info(f"[ORCH] Replayed plan and {len(chunks)} chunks to {subscriber}")

    async def cache_stats(self):
        return await self.cache.stats()

    async def clear_cache(self) -> int:
        return await self.cache.clear_all()

    def performance_report(self) -> Dict[str, Any]:
        report = self.monitor.report()
        report['circuitBreaker'] = self.breaker.stats()
        return report

    def health(self) -> Dict[str, Any]:
        return {
            'status': 'degraded' if self.breaker.is_open else 'ok',
            'queues': {
                queue.name: queue.counts()
                for queue in (self.plan_queue, self.gen_queue, self.parallel_queue)
            },
            'channel': self.channel.stats(),
            'config': self.settings.to_dict(),
        }

    # ------------------------------------------------------------------
    # Emission helpers
    # ------------------------------------------------------------------

    def _publish(self, session_id: str, event: str, payload: Any) -> None:
        self.channel.publish(session_id, event, payload)

    def _telemetry(self, session_id: str, event: str, payload: Any) -> None:
        """Progress events are best-effort and never fail the caller."""
        try:
            self.channel.publish(session_id, event, payload)
        except Exception as e:
            logger.warning(f"[ORCH] Dropped {event} event for {session_id}: {e}")

    @property
    def tts_config(self) -> TTSConfig:
        playback = self.settings.playback
        return TTSConfig(
            enabled=playback.tts_enabled,
            interVisualDelay=playback.inter_visual_delay_ms,
            waitForNarration=playback.wait_for_narration,
            waitForAnimation=playback.wait_for_animation,
        )

    @staticmethod
    def _plan_payload(plan: Plan) -> PlanPayload:
        return PlanPayload(title=plan.title, subtitle=plan.subtitle, toc=plan.toc, steps=plan.summaries())

    def _rendered_payload(self, plan: Plan, step: PlanStep, batch: ActionBatch) -> RenderedPayload:
        return RenderedPayload(
            type='actions',
            stepId=step.id,
            step=step,
            actions=batch.actions,
            transcript=batch.transcript,
            narration=batch.narration,
            plan=plan.header(),
            totalSteps=len(plan.steps),
            ttsConfig=self.tts_config,
            meta=batch.meta,
        )

    def _emit_batch(self, task: GenerationTask, batch: ActionBatch) -> None:
        self._publish(task.session_id, 'rendered', self._rendered_payload(task.plan, task.step, batch))
        logger.info(f"[ORCH] Emitted step {task.step.id} with {len(batch.actions)} actions")

    def _emit_step_error(self, session_id: str, step: PlanStep, error: BaseException) -> None:
        self._publish(session_id, 'rendered', RenderedPayload(
            type='error',
            stepId=step.id,
            step=step,
            message=f"Failed to generate step {step.id}",
            error=str(error),
        ))
        self._telemetry(session_id, 'progress', ProgressPayload(
            stepId=step.id, status='error', message=str(error)
        ))

    async def _store_chunk(self, task: GenerationTask, batch: ActionBatch) -> None:
        try:
            await self.cache.put_chunk(task.topic, task.step.id, batch)
            await self.sessions.put_chunk(task.session_id, task.step.id, batch)
        except CacheError as e:
            # The batch is still delivered, only reuse is lost
            logger.error(f"[ORCH] Could not cache step {task.step.id}: {e}")

    async def _generate_validated(self, task: GenerationTask) -> ActionBatch:
        batch = await self.step_generator.generate(task)
        return self.collaborators.validator.validate(batch, task.step.compiler)

    # ------------------------------------------------------------------
    # Plan phase
    # ------------------------------------------------------------------

    async def _resolve_plan(self, query: str) -> Plan:
        plan = await self.cache.get_plan(query)
        if plan is not None:
            self.monitor.record_cache_hit()
            return plan

        self.monitor.record_cache_miss()
        try:
            plan = await self.breaker.call(lambda: self.collaborators.planner.generate_plan(query))
        except CircuitOpenError:
            raise
        except Exception as e:
            raise PlanGenerationError(query, "Plan generation failed", cause=e) from e

        if not plan.steps:
            raise PlanGenerationError(query, "Planner returned no steps")
        plan = plan.reindexed()
        await self.cache.put_plan(query, plan)
        return plan

    async def _process_plan(self, job: Job[PlanJob]) -> Dict[str, Any]:
        data = job.data
        tokens = bind_context(session_id=data.session_id)
        try:
            logger.info(f"[ORCH] Plan job {job.id} attempt {job.attempts_made}")
            self.monitor.start_request(data.session_id)
            self.monitor.start_plan(data.session_id)

            plan = await self._resolve_plan(data.query)
            self.monitor.end_plan(data.session_id)

            await self.sessions.set_plan(data.session_id, plan)
            await self.sessions.set_current_step(data.session_id, 0)

            self._publish(data.session_id, 'plan', self._plan_payload(plan))
            self._telemetry(data.session_id, 'status', StatusPayload(
                type='plan_ready',
                message=f"Plan ready with {len(plan.steps)} steps",
                plan=plan.header().model_dump(),
                totalSteps=len(plan.steps),
            ))

            self.parallel_queue.add(
                'parallel-generate',
                ParallelGenerationJob(plan=plan, session_id=data.session_id, query=data.query),
            )
            return {'steps': len(plan.steps)}
        finally:
            reset_context(tokens)

    async def _on_plan_failed(self, job: Job[PlanJob], error: BaseException) -> None:
        self.monitor.complete_request(job.data.session_id, success=False)
        self._telemetry(job.data.session_id, 'status', StatusPayload(
            type='plan_failed',
            message=f"Could not plan a lecture for this query: {error}",
        ))

    # ------------------------------------------------------------------
    # Parallel generation phase
    # ------------------------------------------------------------------

    async def _process_parallel(self, job: Job[ParallelGenerationJob]) -> Dict[str, Any]:
        data = job.data
        plan = data.plan
        total = len(plan.steps)
        started = time.monotonic()
        completed = 0

        self._telemetry(data.session_id, 'generation_progress', GenerationProgressPayload(
            phase='starting',
            totalSteps=total,
            message=f"Generating {total} steps",
        ))

        async def on_step_done() -> None:
            nonlocal completed
            completed += 1
            self._telemetry(data.session_id, 'generation_progress', GenerationProgressPayload(
                phase='generating',
                totalSteps=total,
                completedSteps=completed,
                progress=round(completed / total * 100),
                message=f"{completed}/{total} steps ready",
            ))

        stagger = self.settings.generation.stagger_delay
        tasks = []
        for index, step in enumerate(plan.steps):
            if index > 0 and stagger > 0:
                await asyncio.sleep(stagger)
            task = GenerationTask(session_id=data.session_id, step=step, topic=data.query, plan=plan)
            tasks.append(asyncio.create_task(self._run_step(task, on_step_done)))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        successful = sum(1 for result in results if result is True)
        failed = total - successful
        elapsed = time.monotonic() - started

        self.monitor.complete_request(data.session_id, success=successful > 0)
        metrics = self.monitor.metrics()

        self._telemetry(data.session_id, 'generation_progress', GenerationProgressPayload(
            phase='complete',
            totalSteps=total,
            completedSteps=successful,
            progress=100,
            message=f"Generation complete: {successful}/{total} steps ready in {elapsed:.1f}s",
        ))
        self._telemetry(data.session_id, 'status', StatusPayload(
            type='generation_complete',
            successful=successful,
            failed=failed,
            totalTime=round(elapsed * 1000),
            message=f"Generated {successful} of {total} steps in {elapsed:.1f}s",
            performance={
                'cacheHitRate': metrics['cacheHitRate'],
                'avgPlanTime': metrics['avgPlanTime'],
                'avgStepTime': metrics['avgStepTime'],
            },
        ))
        logger.info(f"[ORCH] Session {data.session_id}: {successful}/{total} steps in {elapsed:.1f}s")
        return {'successful': successful, 'failed': failed}

    async def _run_step(self, task: GenerationTask, on_done) -> bool:
        tokens = bind_context(session_id=task.session_id, step_id=task.step.id)
        try:
            async with self._step_slots:
                self.monitor.start_step(task.session_id, task.step.id)
                batch = await self.cache.get_chunk(task.topic, task.step.id)
                if batch is not None:
                    self.monitor.record_cache_hit()
                    self._telemetry(task.session_id, 'progress', ProgressPayload(
                        stepId=task.step.id, status='cached', message='Loaded from cache'
                    ))
                else:
                    self.monitor.record_cache_miss()
                    self._telemetry(task.session_id, 'progress', ProgressPayload(
                        stepId=task.step.id, status='generating', message=f"Generating step {task.step.id}"
                    ))
                    batch = await self._generate_validated(task)
                await self._store_chunk(task, batch)
                self.monitor.end_step(task.session_id, task.step.id)

            self._emit_batch(task, batch)
            self._telemetry(task.session_id, 'progress', ProgressPayload(
                stepId=task.step.id, status='ready', message=f"Step {task.step.id} ready"
            ))
            await on_done()
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[ORCH] Step {task.step.id} failed: {e}")
            self._emit_step_error(task.session_id, task.step, e)
            return False
        finally:
            reset_context(tokens)

    async def _on_parallel_failed(self, job: Job[ParallelGenerationJob], error: BaseException) -> None:
        self.monitor.complete_request(job.data.session_id, success=False)
        self._telemetry(job.data.session_id, 'status', StatusPayload(
            type='generation_failed',
            message=str(error),
        ))

    # ------------------------------------------------------------------
    # Legacy sequential phase
    # ------------------------------------------------------------------

    def pacing_delay(self, batch: ActionBatch) -> float:
        """Seconds step playback is expected to take."""
        if batch.narration is not None and batch.narration.totalDuration > 0:
            return batch.narration.totalDuration
        return estimate_playback(batch.actions)

    def safety_buffer(self, step: PlanStep) -> float:
        gen = self.settings.generation
        return gen.buffer_complex if step.complexity >= gen.complex_threshold else gen.buffer_simple

    async def _process_sequential(self, job: Job[SequentialGenerationJob]) -> Dict[str, Any]:
        data = job.data
        task = GenerationTask(session_id=data.session_id, step=data.step, topic=data.query, plan=data.plan)
        tokens = bind_context(session_id=data.session_id, step_id=data.step.id)
        try:
            batch = await self.cache.get_chunk(data.query, data.step.id)
            if batch is None:
                batch = await self._generate_validated(task)
                await self._store_chunk(task, batch)

            if data.mode == LegacyMode.PREFETCH:
                logger.info(f"[ORCH] Prefetched step {data.step.id}")
                return {'prefetched': data.step.id}

            self._emit_batch(task, batch)
            next_index = data.step.id + 1
            await self.sessions.set_current_step(data.session_id, next_index)

            if next_index < len(data.plan.steps):
                next_step = data.plan.steps[next_index]
                self.gen_queue.add(
                    'prefetch',
                    SequentialGenerationJob(
                        step=next_step, session_id=data.session_id, plan=data.plan,
                        query=data.query, mode=LegacyMode.PREFETCH,
                    ),
                    job_id=f"{data.session_id}:prefetch:{next_step.id}",
                )
                # Buffer sized for the step about to be generated
                delay = self.pacing_delay(batch) + self.safety_buffer(next_step)
                self.gen_queue.add(
                    'emit',
                    SequentialGenerationJob(
                        step=next_step, session_id=data.session_id, plan=data.plan,
                        query=data.query, mode=LegacyMode.EMIT,
                    ),
                    delay=delay,
                    job_id=f"{data.session_id}:emit:{next_step.id}",
                )
                logger.info(f"[ORCH] Step {next_step.id} scheduled in {delay:.1f}s")
            return {'emitted': data.step.id}
        finally:
            reset_context(tokens)

    async def _on_sequential_failed(self, job: Job[SequentialGenerationJob], error: BaseException) -> None:
        if job.data.mode == LegacyMode.EMIT:
            self._emit_step_error(job.data.session_id, job.data.step, error)
