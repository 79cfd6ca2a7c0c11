"""
Worker de matching des segments en arriere-plan.

Chaque activite terminee est mise en file (asyncio.Queue) puis traitee par
process_activity dans un thread, sous timeout. Un timeout ou une panne
d'infrastructure est retente apres un delai, jusqu'au nombre maximum de
tentatives ; toute autre erreur est journalisee et abandonnee.
"""
import asyncio
import logging
from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from app.core.database import engine
from app.core.settings import get_settings
from app.domain.entities import Activity, SegmentEffort
from app.domain.errors import TransientInfraError
from app.domain.services.segment_matcher_service import segment_matcher_service

logger = logging.getLogger(__name__)

# Pause apres une erreur inattendue de la boucle (secondes)
ERROR_WAIT = 30


def run_segment_matching(activity_id: UUID) -> List[SegmentEffort]:
    """Point d'entree synchrone : charge l'activite et lance le matching.

    Leve TransientInfraError si la base est injoignable.
    """
    try:
        with Session(engine) as session:
            activity = session.get(Activity, activity_id)
            if activity is None or activity.deleted_at is not None:
                logger.warning(f"Activite {activity_id} introuvable, matching ignore")
                return []
            if not activity.is_matchable():
                logger.info(f"Activite {activity_id} non eligible au matching")
                return []
            return segment_matcher_service.process_activity(session, activity)
    except OperationalError as e:
        raise TransientInfraError(f"Base indisponible pendant le matching de {activity_id}: {e}") from e


class SegmentEffortWorker:
    """Worker background (asyncio.Task) consommant la file des activites a matcher."""

    def __init__(self, timeout: Optional[float] = None, max_attempts: Optional[int] = None,
                 retry_delay: Optional[float] = None):
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.SEGMENT_MATCH_TIMEOUT_SECONDS
        self.max_attempts = max_attempts if max_attempts is not None else settings.SEGMENT_MATCH_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.SEGMENT_MATCH_RETRY_DELAY_SECONDS
        self.is_running = False
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._retries: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle du worker
    # ------------------------------------------------------------------

    def start_worker(self) -> None:
        """Demarre le worker comme asyncio.Task. Idempotent."""
        if self._task and not self._task.done():
            return
        self._queue = asyncio.Queue()
        self.is_running = True
        self._task = asyncio.get_running_loop().create_task(self._run_loop())
        logger.info("Worker de matching des segments demarre")

    def stop_worker(self) -> None:
        self.is_running = False
        if self._task and not self._task.done():
            self._task.cancel()
        logger.info("Worker de matching des segments arrete")

    def enqueue(self, activity_id: UUID, attempt: int = 1) -> None:
        """Ajoute une activite a la file. Sans worker actif, l'appel est journalise et ignore."""
        if self._queue is None or not self.is_running:
            logger.warning(f"Worker inactif, matching de l'activite {activity_id} non planifie")
            return
        self._queue.put_nowait((activity_id, attempt))

    # ------------------------------------------------------------------
    # Boucle principale
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        self.is_running = True
        logger.info("Demarrage de la boucle de matching")

        while self.is_running:
            try:
                activity_id, attempt = await self._queue.get()
                try:
                    await self.process(activity_id, attempt)
                finally:
                    self._queue.task_done()
            except asyncio.CancelledError:
                logger.info("Worker de matching annule")
                break
            except Exception as e:
                logger.error(f"Erreur dans le worker de matching: {e}")
                await asyncio.sleep(ERROR_WAIT)

        self.is_running = False
        logger.info("Boucle de matching terminee")

    async def process(self, activity_id: UUID, attempt: int = 1) -> Optional[List[SegmentEffort]]:
        """Traite une activite ; replanifie en cas d'echec transitoire.

        Retourne les efforts, ou None si le traitement a echoue.
        """
        try:
            efforts = await self._run_with_timeout(activity_id)
        except TransientInfraError as e:
            if attempt >= self.max_attempts:
                logger.error(f"Matching de {activity_id} abandonne apres {attempt} tentative(s): {e}")
                return None
            logger.warning(
                f"Echec transitoire du matching de {activity_id} "
                f"(tentative {attempt}/{self.max_attempts}), nouvel essai dans {self.retry_delay}s: {e}"
            )
            self._schedule_retry(activity_id, attempt + 1)
            return None
        except Exception as e:
            logger.error(f"Echec du matching de {activity_id}: {e}")
            return None

        logger.info(f"Matching de {activity_id} termine: {len(efforts)} effort(s)")
        return efforts

    async def _run_with_timeout(self, activity_id: UUID) -> List[SegmentEffort]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(run_segment_matching, activity_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransientInfraError(f"Timeout ({self.timeout}s) du matching de {activity_id}") from e

    def _schedule_retry(self, activity_id: UUID, attempt: int) -> None:
        async def _delayed() -> None:
            await asyncio.sleep(self.retry_delay)
            self.enqueue(activity_id, attempt)

        task = asyncio.get_running_loop().create_task(_delayed())
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)


# Instance globale
segment_effort_worker = SegmentEffortWorker()
