from .source import load_points, partition_points, records_to_points
from .sampling import select_initial_centroids
from .generate import BlobsConfig, generate_blobs, save_points

__all__ = [
    "load_points",
    "partition_points",
    "records_to_points",
    "select_initial_centroids",
    "BlobsConfig",
    "generate_blobs",
    "save_points",
]
