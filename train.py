"""
Train the simple and the deep two-tower model on MovieLens-100K and compare
their recommendations for one user.

Usage:
    python train.py
    python train.py --epochs 5 --user_id 42
"""

import argparse

from tqdm import tqdm

import config
from towerrec.exceptions import TowerRecError
from towerrec.session import DemoConfig, DemoSession
from towerrec.utils.logging_setup import setup_logging


def print_table(title, rows, value_label):
    print(f"\n{title}")
    print("-" * 72)
    print(f"{'Rank':>4}  {'Movie':50s} {value_label:>8}  Year")
    for rank, row in enumerate(rows, 1):
        year = row.year if row.year is not None else 'N/A'
        print(f"{rank:4d}  {row.title[:50]:50s} {row.value:8.4f}  {year}")


def main():
    parser = argparse.ArgumentParser(description='Compare simple and deep two-tower recommenders')
    parser.add_argument('--data_dir', default=config.DATA_DIR, help='Directory with u.data, u.item, u.user')
    parser.add_argument('--max_interactions', type=int, default=config.MAX_INTERACTIONS)
    parser.add_argument('--embedding_dim', type=int, default=config.EMBEDDING_DIM)
    parser.add_argument('--batch_size', type=int, default=config.BATCH_SIZE)
    parser.add_argument('--epochs', type=int, default=config.EPOCHS)
    parser.add_argument('--lr', type=float, default=config.LEARNING_RATE)
    parser.add_argument('--seed', type=int, default=config.RANDOM_SEED)
    parser.add_argument('--user_id', type=int, default=None, help='User to test (random qualified user if omitted)')
    args = parser.parse_args()

    setup_logging(config.LOG_LEVEL)

    demo_config = DemoConfig(
        max_interactions=args.max_interactions,
        embedding_dim=args.embedding_dim,
        batch_size=args.batch_size,
        epochs=args.epochs,
        learning_rate=args.lr,
        seed=args.seed,
    )
    session = DemoSession(demo_config)

    print("\n" + "=" * 60)
    print("TWO-TOWER RECOMMENDERS - TRAINING PIPELINE")
    print("=" * 60)
    print(f"Embedding dim: {demo_config.embedding_dim}")
    print(f"Deep tower layers: {demo_config.hidden_layers}")
    print(f"Batch size: {demo_config.batch_size}, epochs: {demo_config.epochs}")
    print("=" * 60)

    try:
        session.load(args.data_dir)

        pbar = None

        def progress(epoch, batch, num_batches, loss_simple, loss_deep):
            nonlocal pbar
            if batch == 0:
                if pbar is not None:
                    pbar.close()
                pbar = tqdm(total=num_batches, desc=f"Epoch {epoch + 1}/{demo_config.epochs}")
            pbar.update(1)
            pbar.set_postfix(simple=f"{loss_simple:.4f}", deep=f"{loss_deep:.4f}")

        session.train(progress=progress)
        if pbar is not None:
            pbar.close()

        comparison = session.test(user_id=args.user_id)
    except TowerRecError as e:
        raise SystemExit(str(e))

    print(f"\nComparison for User {comparison.user_id}")
    print_table('Top 10 Rated (Historical)', comparison.historical, 'Rating')
    print_table('Top 10 Recs (Simple Model)', comparison.simple, 'Score')
    print_table('Top 10 Recs (Deep Model)', comparison.deep, 'Score')

    if session.projection is not None:
        print(f"\nProjected {len(session.projection)} item embeddings to 2D")

    print("\n" + "=" * 60)
    print("DONE!")
    print("=" * 60)


if __name__ == "__main__":
    main()
