"""
Embedding visualization using dimensionality reduction.
Projects item-tower outputs of the deep model onto their first two principal
components so they can be drawn as a 2D scatter.
"""

import numpy as np
import torch
from sklearn.decomposition import PCA

import config


def sample_item_indices(num_items, sample_size=config.PROJECTION_SAMPLE_SIZE):
    """
    Evenly spaced dense item indices covering the whole catalog.

    Returns:
        list[int]: floor(i * (num_items - 1) / (sample_size - 1)) for i in range(sample_size)
    """
    sample_size = min(sample_size, num_items)
    if sample_size <= 1:
        return list(range(sample_size))
    return [i * (num_items - 1) // (sample_size - 1) for i in range(sample_size)]


@torch.no_grad()
def project_item_embeddings(model, dataset, encoder, sample_size=config.PROJECTION_SAMPLE_SIZE,
                            n_components=2):
    """
    Visualize high-dimensional item embeddings in 2D.

    Args:
        model: Trained two-tower model (the deep one in the demo).
        dataset (MovieLensDataset): Provides the dense item catalog.
        encoder (FeatureEncoder): Builds item features for the sampled items.
        sample_size (int): Number of items to project.
        n_components (int): Output dimensionality.

    Returns:
        numpy array: Shape (n_samples, n_components), centred projections.
    """
    indices = sample_item_indices(dataset.num_items, sample_size)
    item_ids = [dataset.item_id_at(i) for i in indices]

    model.eval()
    device = next(model.parameters()).device
    item_indices = torch.tensor(indices, dtype=torch.long, device=device)
    item_features = None
    if model.requires_features:
        item_features = torch.from_numpy(encoder.item_feature_matrix(item_ids)).to(device)
    embeddings = model.item_forward(item_indices, item_features).cpu().numpy()

    return PCA(n_components=n_components).fit_transform(embeddings.astype(np.float64))
