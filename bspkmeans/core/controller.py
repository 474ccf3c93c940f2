from __future__ import annotations

from dataclasses import dataclass, field
from multiprocessing import TimeoutError as PoolTimeoutError
from multiprocessing.pool import ThreadPool
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from bspkmeans.core.aggregator import Partial, accumulate, reduce_partials
from bspkmeans.core.assigner import NearestCentroidAssigner
from bspkmeans.core.averager import CentroidCollector, average
from bspkmeans.core.barrier import RoundBarrier
from bspkmeans.core.checkpoint import CheckpointStore, IterationSnapshot
from bspkmeans.core.config import CheckpointConfig, ExecutionConfig, KMeansConfig
from bspkmeans.core.distance import DistanceMeasure, get_distance_measure
from bspkmeans.core.errors import ConfigurationError, ProtocolViolationError
from bspkmeans.core.termination import TerminationCriteria, build_termination
from bspkmeans.metrics.metrics import centroid_shift, inertia
from bspkmeans.metrics.timers import RoundTimings, Timer

# Результат партиции за раунд: (агрегаты по кластерам, WCSS, метки)
PartitionOutput = Tuple[Partial, float, np.ndarray]


@dataclass
class IterationResult:
    centroids: np.ndarray
    n_rounds: int
    converged: bool
    # Метки последнего раунда в порядке партиций
    labels: np.ndarray
    inertia_history: List[float] = field(default_factory=list)
    timings: RoundTimings = field(default_factory=RoundTimings)


class RoundController:
    """
    Координатор итерации: рассылает центроиды партициям, дожидается барьера,
    собирает новые центроиды и проверяет условие остановки.

    Состояние партиций (точки, буфер центроидов) живёт в операторах
    NearestCentroidAssigner по partition_id; снимок всех операторов
    сохраняется после рассылки центроидов раунда, до его границы.
    """

    def __init__(
        self,
        config: KMeansConfig,
        execution: ExecutionConfig = ExecutionConfig(),
        distance: Optional[DistanceMeasure] = None,
        termination: Optional[TerminationCriteria] = None,
        checkpoint: Optional[CheckpointConfig] = None,
        logger: Any | None = None,
    ) -> None:
        self.config = config
        self.execution = execution
        self.distance = distance or get_distance_measure(config.distance_measure)
        self.termination = termination or build_termination(config.max_iterations, config.tol)
        self.checkpoint = checkpoint
        self.store = CheckpointStore(checkpoint.path) if checkpoint else None
        self.logger = logger

        self._assigners: List[NearestCentroidAssigner] = []
        self._barrier: Optional[RoundBarrier] = None
        self._collector = CentroidCollector(
            config.k, policy=config.empty_cluster_policy, logger=logger
        )
        self._pool: Optional[ThreadPool] = None
        self._inertia_history: List[float] = []

    # --- Запуск и восстановление ---

    def run(
        self, partitions: Sequence[np.ndarray], initial_centroids: np.ndarray
    ) -> IterationResult:
        """Итерация с нулевого раунда: точки загружаются в операторы один раз."""
        centroids = self._check_inputs(partitions, initial_centroids)

        self._assigners = [
            NearestCentroidAssigner(pid, self.distance, logger=self.logger)
            for pid in range(len(partitions))
        ]
        for assigner, points in zip(self._assigners, partitions):
            assigner.add_points(points)
        self._inertia_history = []

        if self.logger:
            self.logger.info(
                f"Starting iteration: {len(partitions)} partitions, "
                f"k={self.config.k}, max_iterations={self.config.max_iterations}"
            )
        return self._iterate(centroids, start_epoch=0, broadcast_done=False)

    def resume(self, snapshot: Optional[IterationSnapshot] = None) -> IterationResult:
        """
        Продолжает итерацию с раунда, сохранённого в чекпоинте.

        Raises:
            RecoveryError: чекпоинт отсутствует, повреждён или несогласован
        """
        if snapshot is None:
            if self.store is None:
                raise ConfigurationError("resume() without snapshot requires a checkpoint config")
            snapshot = self.store.load()
        else:
            snapshot.validate()

        if snapshot.config != self.config:
            raise ConfigurationError(
                f"Checkpoint was written with {snapshot.config}, controller has {self.config}"
            )

        self._assigners = []
        for pid in sorted(snapshot.partitions):
            assigner = NearestCentroidAssigner(pid, self.distance, logger=self.logger)
            assigner.restore(snapshot.partitions[pid])
            self._assigners.append(assigner)
        self._inertia_history = list(snapshot.inertia_history)

        if self.logger:
            self.logger.info(
                f"Resuming iteration at round {snapshot.epoch + 1} "
                f"from {len(self._assigners)} restored partitions"
            )
        # Центроиды раунда уже лежат в буферах восстановленных операторов
        return self._iterate(
            np.asarray(snapshot.centroids, dtype=np.float64),
            start_epoch=snapshot.epoch,
            broadcast_done=True,
        )

    # --- Цикл раундов ---

    def _iterate(
        self, centroids: np.ndarray, start_epoch: int, broadcast_done: bool
    ) -> IterationResult:
        timings = RoundTimings()
        self._barrier = RoundBarrier(len(self._assigners))
        epoch = start_epoch
        converged = False
        labels = np.empty(0, dtype=np.int64)

        try:
            self._open_pool()
            while True:
                if not broadcast_done:
                    self._broadcast(centroids)
                    self._maybe_checkpoint(epoch, centroids)
                broadcast_done = False

                with Timer() as t_assign:
                    outputs = self._run_partitions(epoch, centroids)
                with Timer() as t_update:
                    merged = reduce_partials(out[0] for out in outputs)
                    averaged = [average(acc) for acc in merged.values()]
                    new_centroids = self._collector.collect(averaged, centroids)

                timings.add_round(t_assign.elapsed, t_update.elapsed)
                labels = np.concatenate([out[2] for out in outputs])
                self._inertia_history.append(float(sum(out[1] for out in outputs)))

                round_index = epoch + 1
                max_change = centroid_shift(centroids, new_centroids)
                stop = self.termination.should_terminate(round_index, new_centroids, centroids)
                # Остановка раньше лимита раундов тоже считается сходимостью
                converged = self.termination.has_converged() or (
                    stop and round_index < self.config.max_iterations
                )

                if self.logger and (epoch == start_epoch or round_index % 10 == 0 or stop):
                    status = " (converged)" if converged else ""
                    self.logger.info(
                        f"  Round {round_index}/{self.config.max_iterations}{status} "
                        f"(T_assign={t_assign.elapsed:.6f}s, "
                        f"T_update={t_update.elapsed:.6f}s, "
                        f"max_change={max_change:.2e})"
                    )

                centroids = new_centroids
                epoch += 1
                if stop:
                    break
        except BaseException:
            self._close_pool(terminate=True)
            raise
        finally:
            self._close_pool()
            self._release()

        if self.store is not None:
            self.store.delete()
        if self.logger:
            self.logger.info(f"Iteration terminated after {epoch} rounds")

        return IterationResult(
            centroids=centroids,
            n_rounds=epoch,
            converged=converged,
            labels=labels,
            inertia_history=list(self._inertia_history),
            timings=timings,
        )

    def _broadcast(self, centroids: np.ndarray) -> None:
        """Один и тот же неизменяемый набор центроидов всем партициям."""
        frozen = np.array(centroids, dtype=np.float64, copy=True)
        frozen.setflags(write=False)
        for assigner in self._assigners:
            assigner.receive_centroids(frozen)

    def _run_partitions(self, epoch: int, centroids: np.ndarray) -> List[PartitionOutput]:
        barrier = self._barrier
        if barrier is None:
            raise ProtocolViolationError(f"Round {epoch + 1} started outside of an iteration")
        barrier.open(epoch)
        # Оператор и барьер передаются явно: поток зависшей партиции,
        # брошенный по таймауту, не должен увидеть состояние следующего запуска
        args = [(assigner, barrier, epoch, centroids) for assigner in self._assigners]

        if self._pool is None:
            for a in args:
                self._fire_partition(a)
        else:
            pending = self._pool.map_async(self._fire_partition, args)
            try:
                pending.get(timeout=self.execution.barrier_timeout)
            except PoolTimeoutError:
                raise ProtocolViolationError(
                    f"Round {epoch + 1} did not complete within "
                    f"{self.execution.barrier_timeout}s"
                ) from None

        return barrier.wait(epoch, timeout=self.execution.barrier_timeout)

    def _fire_partition(
        self, args: Tuple[NearestCentroidAssigner, RoundBarrier, int, np.ndarray]
    ) -> int:
        """Граница раунда одной партиции: назначение и локальная агрегация."""
        assigner, barrier, epoch, centroids = args
        assignment = assigner.on_epoch_watermark_incremented(epoch)
        partial = accumulate(assignment, self.config.k)
        sse = inertia(assignment.points, centroids, assignment.labels) if len(assignment) else 0.0
        barrier.arrive(assigner.partition_id, epoch, (partial, sse, assignment.labels))
        return assigner.partition_id

    def _maybe_checkpoint(self, epoch: int, centroids: np.ndarray) -> None:
        if self.store is None or self.checkpoint is None:
            return
        if epoch % self.checkpoint.every_n_rounds != 0:
            return
        snapshot = IterationSnapshot(
            epoch=epoch,
            centroids=np.array(centroids, copy=True),
            partitions={a.partition_id: a.snapshot() for a in self._assigners},
            config=self.config,
            inertia_history=list(self._inertia_history),
        )
        path = self.store.save(snapshot)
        if self.logger:
            self.logger.info(f"  Checkpoint for round {epoch + 1} saved to {path}")

    # --- Ресурсы ---

    def _open_pool(self) -> None:
        """
        Пул потоков для партиций.

        Без пула партиции исполняются последовательно в потоке координатора,
        и прервать зависший раунд нельзя. Поэтому при заданном
        barrier_timeout пул открывается всегда, хотя бы из одного потока.
        """
        n_workers = min(self.execution.effective_workers, len(self._assigners))
        if n_workers > 1 or self.execution.barrier_timeout is not None:
            self._pool = ThreadPool(processes=n_workers)

    def _close_pool(self, terminate: bool = False) -> None:
        if self._pool is not None:
            if terminate:
                # Незавершённые партиции не дожидаемся
                self._pool.terminate()
            else:
                self._pool.close()
                self._pool.join()
        self._pool = None

    def _release(self) -> None:
        """Сигнал завершения: операторы освобождают сохранённые точки."""
        for assigner in self._assigners:
            assigner.on_iteration_terminated()

    # --- Проверка входов ---

    def _check_inputs(
        self, partitions: Sequence[np.ndarray], initial_centroids: np.ndarray
    ) -> np.ndarray:
        if len(partitions) == 0:
            raise ConfigurationError("At least one partition is required")

        centroids = np.asarray(initial_centroids, dtype=np.float64)
        if centroids.ndim != 2 or centroids.shape[0] != self.config.k:
            raise ConfigurationError(
                f"Expected initial centroids of shape (k={self.config.k}, D), "
                f"got {centroids.shape}"
            )

        D = centroids.shape[1]
        for pid, points in enumerate(partitions):
            shape = np.shape(points)
            if len(shape) != 2:
                raise ConfigurationError(f"Partition {pid} must be 2-D, got shape {shape}")
            if shape[0] and shape[1] != D:
                raise ConfigurationError(
                    f"Partition {pid} has D={shape[1]}, initial centroids have D={D}"
                )
        return centroids
