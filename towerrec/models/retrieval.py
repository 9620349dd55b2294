"""
Full-catalog retrieval for trained two-tower models.
Scores every indexed item against one user by dot product and returns the best
unseen items.
"""

from typing import List, NamedTuple

import torch

import config


class Recommendation(NamedTuple):
    item_id: int
    score: float


def _device_of(model):
    return next(model.parameters()).device


@torch.no_grad()
def score_catalog(model, dataset, encoder, user_id, user_index):
    """
    Dot-product score of one user against every item in the dense index space.

    Returns:
        numpy array: Scores ordered by dense item index.
    """
    model.eval()
    device = _device_of(model)

    user_indices = torch.tensor([user_index], dtype=torch.long, device=device)
    item_indices = torch.arange(dataset.num_items, dtype=torch.long, device=device)

    if model.requires_features:
        user_features = torch.from_numpy(encoder.user_feature_matrix([user_id])).to(device)
        item_features = torch.from_numpy(
            encoder.item_feature_matrix(dataset.catalog_item_ids())).to(device)
        user_emb = model.user_forward(user_indices, user_features)
        item_embs = model.item_forward(item_indices, item_features)
    else:
        user_emb = model.user_forward(user_indices)
        item_embs = model.item_forward(item_indices)

    return (item_embs @ user_emb.squeeze(0)).cpu().numpy()


def recommend(model, dataset, encoder, user_id, user_index, exclude_item_ids,
              top_k=config.EVAL_K) -> List[Recommendation]:
    """
    Top-K unseen items for a user.

    Args:
        model: A two-tower model (simple or deep).
        dataset (MovieLensDataset): Provides the dense item catalog.
        encoder (FeatureEncoder): Side features for models that require them.
        user_id (int): Raw user id.
        user_index (int): Dense index of the same user.
        exclude_item_ids (set): Raw item ids to leave out (already rated).
        top_k (int): Maximum number of results.

    Returns:
        list[Recommendation]: Sorted by score, highest first.
    """
    scores = score_catalog(model, dataset, encoder, user_id, user_index)

    candidates = []
    for item_index, score in enumerate(scores):
        item_id = dataset.item_id_at(item_index)
        if item_id not in exclude_item_ids:
            candidates.append(Recommendation(item_id=item_id, score=float(score)))

    candidates.sort(key=lambda rec: rec.score, reverse=True)
    return candidates[:top_k]

