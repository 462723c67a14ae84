from __future__ import annotations

"""CLI utility to drop and recreate the Milvus chunk collection."""

import argparse

from pymilvus import connections, utility

from src.app.settings import settings


def main() -> None:
    """Drop the chunk collection, then rebuild it with the configured embedding dimension."""
    parser = argparse.ArgumentParser(description="Drop and recreate the Milvus chunk collection.")
    parser.add_argument(
        "--collection",
        default=settings.milvus_collection,
        help="Collection name to reset.",
    )
    args = parser.parse_args()

    connections.connect(alias="default", uri=settings.milvus_uri, token=settings.milvus_token)
    if utility.has_collection(args.collection):
        print(f"Dropping collection: {args.collection}")
        utility.drop_collection(args.collection)

    from src.app.dependencies import build_embedder
    from src.vectorstore.milvus import MilvusConfig, MilvusVectorStore

    embedder = build_embedder()
    MilvusVectorStore(
        MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=args.collection,
            dimension=embedder.dimension,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
        )
    )
    print(f"Recreated collection: {args.collection} (dimension {embedder.dimension})")


if __name__ == "__main__":
    main()
