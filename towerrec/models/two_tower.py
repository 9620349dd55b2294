"""
Two-Tower retrieval models.
Both variants map users and items into a shared space where the dot product of a
user vector and an item vector is the relevance score.

SimpleTwoTowerModel: ID embedding lookups only.
DeepTwoTowerModel: ID embedding + side features through a per-tower MLP.

Callers never branch on the concrete class: every model exposes
`requires_features` and accepts an optional feature payload in its forward passes.
"""

import torch
import torch.nn as nn
import torch.nn.functional as F

import config


def _init_embedding(embedding, std=config.EMBEDDING_INIT_STD):
    nn.init.normal_(embedding.weight, mean=0.0, std=std)


class SimpleTwoTowerModel(nn.Module):
    """
    Learns one latent vector per user and per item. No bias, no activation:
    a row gather on each side is the whole tower.
    """

    requires_features = False

    def __init__(self, num_users, num_items, embedding_dim=config.EMBEDDING_DIM):
        super().__init__()
        self.num_users = num_users
        self.num_items = num_items
        self.embedding_dim = embedding_dim

        self.user_embeddings = nn.Embedding(num_users, embedding_dim)
        self.item_embeddings = nn.Embedding(num_items, embedding_dim)
        _init_embedding(self.user_embeddings)
        _init_embedding(self.item_embeddings)

    def user_forward(self, user_indices, user_features=None):
        """
        user_indices: (n,)
        returns: (n, embedding_dim)
        """
        return self.user_embeddings(user_indices)

    def item_forward(self, item_indices, item_features=None):
        return self.item_embeddings(item_indices)


class Tower(nn.Module):
    """
    One side of the deep model: ID embedding concatenated with side features,
    then Linear -> ReLU -> Linear, L2-normalized per row.
    """

    def __init__(self, num_ids, embedding_dim, feature_dim, hidden_dim, output_dim):
        super().__init__()
        self.embeddings = nn.Embedding(num_ids, embedding_dim)
        self.dense1 = nn.Linear(embedding_dim + feature_dim, hidden_dim)
        self.dense2 = nn.Linear(hidden_dim, output_dim)

        _init_embedding(self.embeddings)
        # Glorot-uniform weights and zero biases for the dense layers
        for layer in (self.dense1, self.dense2):
            nn.init.xavier_uniform_(layer.weight)
            nn.init.zeros_(layer.bias)

    def forward(self, indices, features):
        combined = torch.cat([self.embeddings(indices), features], dim=1)
        output = self.dense2(F.relu(self.dense1(combined)))
        return F.normalize(output, p=2, dim=-1)


class DeepTwoTowerModel(nn.Module):
    """
    Feature-enriched two-tower model.
    User Tower: user ID embedding + user features (age, gender, occupation).
    Item Tower: item ID embedding + item features (genres).
    The towers share no parameters.
    """

    requires_features = True

    def __init__(self, num_users, num_items, embedding_dim, user_feature_dim,
                 item_feature_dim, hidden_layers=None):
        """
        Args:
            num_users (int): Rows of the user ID embedding table.
            num_items (int): Rows of the item ID embedding table.
            embedding_dim (int): Width of the ID embeddings.
            user_feature_dim (int): Length of a user feature vector.
            item_feature_dim (int): Length of an item feature vector.
            hidden_layers (sequence): [hidden width, output width];
                defaults to [DEEP_HIDDEN_DIM, embedding_dim].
        """
        super().__init__()
        if hidden_layers is None:
            hidden_layers = [config.DEEP_HIDDEN_DIM, embedding_dim]
        if len(hidden_layers) != 2:
            raise ValueError(f"hidden_layers must hold exactly two widths, got {list(hidden_layers)}")

        self.num_users = num_users
        self.num_items = num_items
        self.embedding_dim = embedding_dim
        self.hidden_layers = list(hidden_layers)

        hidden_dim, output_dim = hidden_layers
        self.user_tower = Tower(num_users, embedding_dim, user_feature_dim, hidden_dim, output_dim)
        self.item_tower = Tower(num_items, embedding_dim, item_feature_dim, hidden_dim, output_dim)

    def user_forward(self, user_indices, user_features=None):
        """
        user_indices: (n,)
        user_features: (n, user_feature_dim)
        returns: unit-length rows (n, output_dim)
        """
        if user_features is None:
            raise ValueError("DeepTwoTowerModel needs user features for its forward pass")
        return self.user_tower(user_indices, user_features)

    def item_forward(self, item_indices, item_features=None):
        if item_features is None:
            raise ValueError("DeepTwoTowerModel needs item features for its forward pass")
        return self.item_tower(item_indices, item_features)
