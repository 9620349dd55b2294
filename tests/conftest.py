"""
Shared synthetic MovieLens-style records for the test suite.
"""

import pytest

from towerrec.data.dataset import MovieLensDataset
from towerrec.data.loader import NUM_GENRES, Interaction, Item, User
from towerrec.features.features import FeatureEncoder

OCCUPATIONS = ['engineer', 'artist', 'student', 'writer']
NUM_CLUSTERS = 3


def make_item(title, year=None, genre=0):
    flags = [0] * NUM_GENRES
    flags[genre % NUM_GENRES] = 1
    return Item(title=title, year=year, genres=tuple(flags))


def make_user(age=30, gender=1, occupation='engineer'):
    return User(age=age / 100, gender=gender, occupation=occupation)


def item_line(item_id, title, flags=None):
    flags = flags if flags is not None else [0] * NUM_GENRES
    return '|'.join([str(item_id), title, '01-Jan-1995', '', 'http://example.org']
                    + [str(f) for f in flags])


def clustered_records(num_users=12, items_per_cluster=24, per_user=22):
    """
    Users of cluster c only rate items of cluster c. Rows are interleaved across
    users so every sequential batch mixes several users.

    Raw ids are offset from the dense indices (users start at 1, items at 101).
    """
    items = {}
    for i in range(items_per_cluster * NUM_CLUSTERS):
        items[101 + i] = make_item(f"Movie {i}", year=1990 + i % 10, genre=i % NUM_CLUSTERS)

    users = {}
    for u in range(num_users):
        users[1 + u] = make_user(age=20 + u, gender=u % 2,
                                 occupation=OCCUPATIONS[u % len(OCCUPATIONS)])

    interactions = []
    for r in range(per_user):
        for u in range(num_users):
            cluster = u % NUM_CLUSTERS
            slot = (r + u) % items_per_cluster
            item_id = 101 + slot * NUM_CLUSTERS + cluster
            interactions.append(Interaction(
                user_id=1 + u,
                item_id=item_id,
                rating=float(1 + (r + u) % 5),
                timestamp=1000 + r * num_users + u,
            ))
    return interactions, items, users


@pytest.fixture
def records():
    return clustered_records()


@pytest.fixture
def dataset(records):
    return MovieLensDataset(*records)


@pytest.fixture
def encoder(dataset):
    return FeatureEncoder(dataset.users, dataset.items, dataset.occupation_vocab)


@pytest.fixture
def scenario_records():
    interactions = [
        Interaction(user_id=1, item_id=1, rating=5.0, timestamp=100),
        Interaction(user_id=1, item_id=2, rating=3.0, timestamp=101),
        Interaction(user_id=2, item_id=1, rating=4.0, timestamp=102),
    ]
    items = {1: make_item('A', year=None, genre=1), 2: make_item('B', year=1995, genre=2)}
    users = {1: make_user(occupation='engineer'), 2: make_user(gender=0, occupation='artist')}
    return interactions, items, users
