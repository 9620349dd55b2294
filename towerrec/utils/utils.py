"""
Collection of utility functions for turning the indexed dataset into training batches.
"""

import random

from torch.utils.data import DataLoader, TensorDataset
import torch
import numpy as np


def prepare_data_loader(dataset, encoder, batch_size=512):
    """
    Construct a PyTorch DataLoader over the whole interaction sequence.

    Batches are taken in file order and are NOT shuffled between epochs; the last
    batch keeps whatever remains. Each batch is a tuple
    (user_idx, item_idx, user_features, item_features).

    Args:
        dataset (MovieLensDataset): Indexed records.
        encoder (FeatureEncoder): Builds the side-feature vectors.
        batch_size (int): Interactions per batch.

    Returns:
        DataLoader
    """
    user_idx, item_idx = dataset.interaction_indices()

    user_ids = [interaction.user_id for interaction in dataset.interactions]
    item_ids = [interaction.item_id for interaction in dataset.interactions]

    tensors = TensorDataset(
        torch.from_numpy(user_idx),
        torch.from_numpy(item_idx),
        torch.from_numpy(encoder.user_feature_matrix(user_ids)),
        torch.from_numpy(encoder.item_feature_matrix(item_ids)),
    )
    return DataLoader(tensors, batch_size=batch_size, shuffle=False)


def set_seed(seed):
    """Seed python, numpy and torch RNGs for reproducible runs."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
