"""
Module for loading MovieLens-100K data.
Parses ratings (u.data), movie metadata (u.item) and user demographics (u.user)
into typed records. The three files are read concurrently and a failure in any
of them aborts the whole load.
"""

import os
import re
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd #type: ignore

import config
from towerrec.exceptions import DataFormatError, DataLoadError

log = logging.getLogger(__name__)

GENRE_COLUMNS = [
    'unknown', 'Action', 'Adventure', 'Animation',
    'Children', 'Comedy', 'Crime', 'Documentary', 'Drama', 'Fantasy',
    'Film-Noir', 'Horror', 'Musical', 'Mystery', 'Romance', 'Sci-Fi',
    'Thriller', 'War', 'Western']

NUM_GENRES = len(GENRE_COLUMNS)

# id, title, release date, video release date, imdb url + genre flags
ITEM_FIELDS = 5 + NUM_GENRES
USER_FIELDS = 5
INTERACTION_FIELDS = 4

_YEAR_SUFFIX = re.compile(r'\((\d{4})\)$')


@dataclass(frozen=True)
class Interaction:
    user_id: int
    item_id: int
    rating: float
    timestamp: int


@dataclass(frozen=True)
class Item:
    title: str
    year: Optional[int]
    genres: Tuple[int, ...]


@dataclass(frozen=True)
class User:
    age: float
    gender: int
    occupation: str


def _to_number(kind, value, source, line_number, field):
    try:
        return kind(value)
    except ValueError:
        raise DataFormatError(source, line_number, f"non-numeric {field}: {value!r}") from None


def _split(line, sep, expected, source, line_number):
    parts = line.split(sep)
    if len(parts) != expected:
        raise DataFormatError(
            source, line_number,
            f"expected {expected} fields, got {len(parts)}")
    return parts


def parse_title(raw_title):
    """
    Split a MovieLens title into its name and release year.

    Args:
        raw_title (str): Title as stored in u.item, e.g. "Toy Story (1995)".

    Returns:
        tuple: (title without the year suffix, year or None).
    """
    match = _YEAR_SUFFIX.search(raw_title)
    if match is None:
        return raw_title.strip(), None
    return _YEAR_SUFFIX.sub('', raw_title).strip(), int(match.group(1))


def parse_interactions(text, max_interactions=config.MAX_INTERACTIONS, source='u.data'):
    """
    Parse tab-separated rating rows, keeping only the first `max_interactions`.

    Truncation is positional: the file order is preserved and no sampling happens.

    Args:
        text (str): Raw contents of u.data.
        max_interactions (int): Cap on the number of rows kept.
        source (str): Name used in error messages.

    Returns:
        list[Interaction]: Parsed interactions in file order.
    """
    text = text.strip()
    if not text:
        return []

    interactions = []
    for line_number, line in enumerate(text.split('\n')[:max_interactions], start=1):
        user_id, item_id, rating, timestamp = _split(
            line.strip(), '\t', INTERACTION_FIELDS, source, line_number)
        interactions.append(Interaction(
            user_id=_to_number(int, user_id, source, line_number, 'user id'),
            item_id=_to_number(int, item_id, source, line_number, 'item id'),
            rating=_to_number(float, rating, source, line_number, 'rating'),
            timestamp=_to_number(int, timestamp, source, line_number, 'timestamp'),
        ))
    return interactions


def parse_items(text, source='u.item'):
    """
    Parse pipe-separated movie rows into Item records keyed by raw item id.

    Returns:
        dict: {item_id: Item}
    """
    items: Dict[int, Item] = {}
    for line_number, line in enumerate(text.strip().split('\n'), start=1):
        line = line.strip()
        if not line:
            continue
        parts = _split(line, '|', ITEM_FIELDS, source, line_number)
        item_id = _to_number(int, parts[0], source, line_number, 'item id')
        title, year = parse_title(parts[1])
        genres = tuple(
            _to_number(int, flag, source, line_number, 'genre flag')
            for flag in parts[5:])
        items[item_id] = Item(title=title, year=year, genres=genres)
    return items


def parse_users(text, source='u.user'):
    """
    Parse pipe-separated user rows into User records keyed by raw user id.

    Age is scaled by 1/100 and gender "M" maps to 1, anything else to 0.

    Returns:
        dict: {user_id: User}
    """
    users: Dict[int, User] = {}
    for line_number, line in enumerate(text.strip().split('\n'), start=1):
        line = line.strip()
        if not line:
            continue
        user_id, age, gender, occupation, _zip_code = _split(
            line, '|', USER_FIELDS, source, line_number)
        users[_to_number(int, user_id, source, line_number, 'user id')] = User(
            age=_to_number(int, age, source, line_number, 'age') / 100,
            gender=1 if gender == 'M' else 0,
            occupation=occupation,
        )
    return users


def _read_text(path):
    with open(path, 'r', encoding='latin-1') as f:
        return f.read()


def read_movielens(data_dir=config.DATA_DIR, max_interactions=config.MAX_INTERACTIONS):
    """
    Read and parse the three MovieLens-100K files.

    The files are fetched in parallel and the call waits for all of them; if any
    read or parse fails the whole load fails.

    Args:
        data_dir (str): Directory holding u.data, u.item and u.user.
        max_interactions (int): Cap on the number of interactions kept.

    Returns:
        tuple: (interactions, items, users)

    Raises:
        DataLoadError: If a file is missing or malformed.
    """
    paths = [os.path.join(data_dir, name)
             for name in (config.RATINGS_FILE, config.MOVIES_FILE, config.USERS_FILE)]

    try:
        with ThreadPoolExecutor(max_workers=len(paths)) as pool:
            ratings_text, movies_text, users_text = pool.map(_read_text, paths)

        interactions = parse_interactions(ratings_text, max_interactions)
        items = parse_items(movies_text)
        users = parse_users(users_text)
    except (OSError, DataFormatError) as e:
        raise DataLoadError(f"Error loading data from {data_dir}: {e}") from e

    log.info("Read %d interactions, %d items, %d users from %s",
             len(interactions), len(items), len(users), data_dir)
    return interactions, items, users


def interactions_to_df(interactions: List[Interaction]):
    """Build a DataFrame with columns [user_id, item_id, rating, timestamp]."""
    return pd.DataFrame({
        'user_id': np.array([x.user_id for x in interactions], dtype=np.int64),
        'item_id': np.array([x.item_id for x in interactions], dtype=np.int64),
        'rating': np.array([x.rating for x in interactions], dtype=np.float64),
        'timestamp': np.array([x.timestamp for x in interactions], dtype=np.int64),
    })
