from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable

import requests

from .errors import CatalogUnavailable
from .models import Item

logger = logging.getLogger(__name__)

USER_AGENT = "BoardGameTimeline/1.0"

# (BoardGameGeek id, name, year of publication)
BOARD_GAMES: list[tuple[str, str, int]] = [
    ("174430", "Gloomhaven", 2017),
    ("224517", "Brass: Birmingham", 2018),
    ("167791", "Terraforming Mars", 2016),
    ("233078", "Wingspan", 2019),
    ("12333", "Twilight Struggle", 2005),
    ("182028", "Through the Ages: A New Story of Civilization", 2015),
    ("193738", "Great Western Trail", 2016),
    ("220308", "Gaia Project", 2017),
    ("169786", "Scythe", 2016),
    ("187645", "Star Wars: Rebellion", 2016),
    ("3076", "Puerto Rico", 2002),
    ("822", "Carcassonne", 2000),
    ("13", "CATAN", 1995),
    ("30549", "Pandemic", 2008),
    ("28720", "Brass: Lancashire", 2007),
    ("31260", "Agricola", 2007),
    ("2651", "Power Grid", 2004),
    ("68448", "7 Wonders", 2010),
    ("36218", "Dominion", 2008),
    ("9209", "Ticket to Ride", 2004),
    ("521", "Crokinole", 1876),
    ("1406", "Monopoly", 1935),
    ("181", "Risk", 1959),
    ("188", "Go", -2200),
    ("171", "Chess", 1475),
    ("320", "Scrabble", 1948),
    ("2083", "Trivial Pursuit", 1981),
    ("178900", "Codenames", 2015),
    ("342942", "Ark Nova", 2021),
    ("312484", "Lost Ruins of Arnak", 2020),
    ("324856", "Cascadia", 2021),
    ("316554", "Dune: Imperium", 2020),
    ("237182", "Root", 2018),
    ("205637", "Arkham Horror: The Card Game", 2016),
    ("161936", "Pandemic Legacy: Season 1", 2015),
    ("84876", "The Castles of Burgundy", 2011),
    ("120677", "Terra Mystica", 2012),
    ("102794", "Caverna: The Cave Farmers", 2013),
    ("96848", "Mage Knight Board Game", 2011),
    ("70323", "King of Tokyo", 2011),
    ("148228", "Splendor", 2014),
    ("199792", "Everdell", 2018),
    ("356123", "Earth", 2023),
    ("359438", "Forest Shuffle", 2023),
    ("295770", "Frosthaven", 2023),
    ("291457", "Gloomhaven: Jaws of the Lion", 2020),
    ("37111", "Battlestar Galactica", 2008),
    ("25613", "Through the Ages", 2006),
    ("5782", "The Game of Life", 1960),
    ("463", "Clue", 1949),
    ("15987", "Arkham Horror", 2005),
    ("43111", "Chaos in the Old World", 2009),
    ("230802", "Azul", 2017),
    ("40834", "Dixit", 2008),
    ("131357", "Coup", 2012),
    ("209778", "Magic Maze", 2017),
    ("173346", "Champions of Midgard", 2015),
    ("172818", "Above and Below", 2015),
    ("244992", "The Mind", 2018),
    ("256226", "Just One", 2018),
    ("266810", "Pax Pamir (Second Edition)", 2019),
    ("283355", "Nemesis", 2018),
    ("317985", "Beyond the Sun", 2020),
    ("251247", "Barrage", 2019),
    ("184267", "On Mars", 2020),
    ("175640", "Castle Panic", 2009),
    ("126163", "Tzolk'in: The Mayan Calendar", 2012),
    ("35677", "Le Havre", 2008),
    ("72125", "Eclipse", 2011),
]


class CatalogProvider:
    """Board games with publication years, cached and shuffled on demand.

    Images come from the geekdo JSON API. A game whose image lookup fails is
    still served (clients show a placeholder), so the catalog never shrinks
    because of network trouble.
    """

    def __init__(
        self,
        api_base: str = "https://api.geekdo.com/api",
        fetch_images: bool = True,
        cache_ttl_sec: float = 3600,
        timeout_sec: float = 15,
        request_delay_sec: float = 0.1,
        games: list[tuple[str, str, int]] | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.fetch_images = fetch_images
        self.cache_ttl_sec = cache_ttl_sec
        self.timeout_sec = timeout_sec
        self.request_delay_sec = request_delay_sec
        self._games = list(games if games is not None else BOARD_GAMES)
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json", "User-Agent": USER_AGENT})
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._cache: list[Item] = []
        self._fetched_at: float | None = None

    def _is_fresh(self) -> bool:
        if not self._cache or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.cache_ttl_sec

    def _get_json(self, url: str, params: dict[str, Any]) -> dict:
        resp = self._session.get(url, params=params, timeout=self.timeout_sec)
        resp.raise_for_status()
        return resp.json()

    def fetch_image(self, game_id: str) -> str | None:
        """Best box-front image for a game, falling back to the gallery."""
        url = f"{self.api_base}/images"
        base_params = {"objectid": game_id, "objecttype": "thing", "nosession": 1}
        try:
            data = self._get_json(url, {**base_params, "tag": "BoxFront"})
            images = data.get("images") or []
            if images:
                images = sorted(images, key=lambda i: i.get("numrecommend") or 0, reverse=True)
                return images[0].get("imageurl_lg") or images[0].get("imageurl") or None

            data = self._get_json(url, {**base_params, "gallery": "game"})
            images = data.get("images") or []
            if images:
                return images[0].get("imageurl_lg") or images[0].get("imageurl") or None
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Error fetching image for game %s: %s", game_id, exc)
        return None

    def _load_items(self) -> list[Item]:
        items: list[Item] = []
        for game_id, name, year in self._games:
            image = None
            if self.fetch_images:
                image = self.fetch_image(game_id)
                if self.request_delay_sec:
                    time.sleep(self.request_delay_sec)
            items.append(Item(id=game_id, name=name, year=year, image=image, thumbnail=image))

        if self.fetch_images:
            with_images = sum(1 for i in items if i.image)
            logger.info("Loaded images for %d/%d games", with_images, len(items))
        return items

    def refresh(self, force: bool = False) -> list[Item]:
        with self._lock:
            if force or not self._is_fresh():
                logger.info("Loading %d board games into the catalog", len(self._games))
                self._cache = self._load_items()
                self._fetched_at = self._clock()
            return list(self._cache)

    def fetch_shuffled_items(self, min_count: int = 0) -> list[Item]:
        """Every cached item in random order; at least ``min_count`` of them."""
        items = self.refresh()
        if len(items) < min_count:
            raise CatalogUnavailable()
        self._rng.shuffle(items)
        return items

    def preload(self) -> None:
        try:
            items = self.refresh()
        except Exception:
            logger.exception("Failed to preload board games")
            return
        logger.info("Preloaded %d games", len(items))
