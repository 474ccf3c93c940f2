"""
Командная строка: обучение итеративного KMeans и генерация датасетов.

Примеры:

  python -m bspkmeans.main generate --output datasets/blobs.npy --N 10000 --D 2 --K 4
  python -m bspkmeans.main fit --input datasets/blobs.npy --k 4 --partitions 8 --workers 4
  python -m bspkmeans.main fit --input datasets/blobs.npy --k 4 --checkpoint ckpt.pkl
  python -m bspkmeans.main fit --resume --checkpoint ckpt.pkl --k 4
"""

import argparse
import json
import sys
from multiprocessing import cpu_count
from pathlib import Path
from typing import List, Optional

from bspkmeans.core.config import CheckpointConfig, ExecutionConfig, KMeansConfig
from bspkmeans.core.distance import available_distance_measures
from bspkmeans.core.errors import InputError, KMeansError
from bspkmeans.core.kmeans import KMeans, KMeansModel
from bspkmeans.data.generate import BlobsConfig, generate_blobs, save_points
from bspkmeans.data.source import load_points
from bspkmeans.metrics.metrics import throughput
from bspkmeans.utils.logging import setup_logger


def _add_fit_parser(subparsers) -> None:
    p = subparsers.add_parser("fit", help="Обучить KMeans на файле с точками")
    p.add_argument("--input", type=str, default=None, help="Файл точек (.npy, .jsonl, текст)")
    p.add_argument("--k", type=int, required=True, help="Количество кластеров")
    p.add_argument("--max-iterations", type=int, default=20, help="Число раундов (по умолчанию: 20)")
    p.add_argument("--seed", type=int, default=0, help="Seed выбора начальных центроидов")
    p.add_argument(
        "--distance-measure",
        type=str,
        default="euclidean",
        help=f"Мера расстояния ({', '.join(available_distance_measures())})",
    )
    p.add_argument(
        "--features-column",
        type=str,
        default="features",
        help="Поле записи с вектором признаков (для .jsonl)",
    )
    p.add_argument("--tol", type=float, default=None, help="Порог сходимости (по умолчанию: выкл.)")
    p.add_argument("--partitions", type=int, default=cpu_count(), help="Количество партиций")
    p.add_argument("--workers", type=int, default=cpu_count(), help="Количество потоков пула")
    p.add_argument("--checkpoint", type=str, default=None, help="Файл чекпоинта итерации")
    p.add_argument("--checkpoint-every", type=int, default=1, help="Сохранять чекпоинт каждые N раундов")
    p.add_argument("--resume", action="store_true", help="Продолжить итерацию из --checkpoint")
    p.add_argument("--output", type=str, default=None, help="JSON с итоговыми центроидами")


def _add_generate_parser(subparsers) -> None:
    p = subparsers.add_parser("generate", help="Сгенерировать синтетический датасет (make_blobs)")
    p.add_argument("--output", type=str, required=True, help="Путь (.npy или текст)")
    p.add_argument("--N", type=int, default=10_000)
    p.add_argument("--D", type=int, default=2)
    p.add_argument("--K", type=int, default=4)
    p.add_argument("--cluster-std", type=float, default=1.0)
    p.add_argument("--seed", type=int, default=42)


def run_fit(args: argparse.Namespace, logger) -> None:
    config = KMeansConfig(
        k=args.k,
        max_iterations=args.max_iterations,
        seed=args.seed,
        distance_measure=args.distance_measure,
        features_column=args.features_column,
        tol=args.tol,
    )
    execution = ExecutionConfig(n_partitions=args.partitions, n_workers=args.workers)
    checkpoint = (
        CheckpointConfig(path=Path(args.checkpoint), every_n_rounds=args.checkpoint_every)
        if args.checkpoint
        else None
    )
    estimator = KMeans(config, execution=execution, checkpoint=checkpoint, logger=logger)

    if args.resume:
        model = estimator.resume()
    else:
        if args.input is None:
            raise KMeansError("--input is required unless --resume is given")
        try:
            X = load_points(args.input, features_column=config.features_column)
        except KMeansError:
            raise
        except (OSError, ValueError) as e:
            raise InputError(f"Cannot load points from {args.input}: {e}") from e
        model = estimator.fit(X)

    _report(model, args, logger)


def _report(model: KMeansModel, args: argparse.Namespace, logger) -> None:
    result = model.result
    if result is None:
        raise KMeansError("Model has no iteration result to report")
    N = int(result.labels.shape[0])
    D = int(model.centroids.shape[1])

    logger.info(
        f"Finished {result.n_rounds} rounds (converged={result.converged}), "
        f"T_iter_total={result.timings.t_iter_total:.6f}s"
    )
    if result.timings.t_iter_total > 0:
        ops = throughput(N, model.k, D, result.n_rounds, result.timings.t_iter_total)
        logger.info(f"Throughput: {ops:.3e} ops/s")
    if result.inertia_history:
        logger.info(f"Inertia: {result.inertia_history[-1]:.6f}")

    if args.output:
        payload = {
            "k": model.k,
            "n_rounds": result.n_rounds,
            "converged": result.converged,
            "centroids": model.centroids.tolist(),
            "inertia_history": result.inertia_history,
        }
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        logger.info(f"Centroids saved to {args.output}")


def run_generate(args: argparse.Namespace, logger) -> None:
    dataset = generate_blobs(
        BlobsConfig(N=args.N, D=args.D, K=args.K, cluster_std=args.cluster_std, seed=args.seed)
    )
    path = save_points(dataset, args.output)
    logger.info(f"Dataset N={args.N} D={args.D} K={args.K} saved to {path}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Итеративный KMeans с синхронизацией раундов",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="mode", help="Режим работы")
    _add_fit_parser(subparsers)
    _add_generate_parser(subparsers)
    args = parser.parse_args(argv)

    logger = setup_logger()

    try:
        if args.mode == "fit":
            run_fit(args, logger)
        elif args.mode == "generate":
            run_generate(args, logger)
        else:
            parser.print_help()
            return 1
    except (KMeansError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
