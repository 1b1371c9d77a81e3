"""One-stop access to a recorded game."""
import hashlib
import io
import logging
import os
import threading
from dataclasses import asdict

from recgame import fast as body_decoder
from recgame import outcome as outcome_resolver
from recgame import stream
from recgame.errors import PlayerNotFound
from recgame.fast import header as header_decoder
from recgame.fast import version as version_sniffer
from recgame.util import DEFAULT_ENCODING

LOGGER = logging.getLogger(__name__)
AGE_BANDS = ('feudal_time', 'castle_time', 'imperial_time')


def _read_source(source):
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, (str, os.PathLike)):
        with open(source, 'rb') as handle:
            return handle.read()
    source.seek(0)
    return source.read()


def _minute(time):
    return int(time // 60000)


class RecordedGame:
    """A recorded game, decoded lazily.

    Every analysis runs at most once per instance; later calls return the
    cached result (or raise the cached error).
    """

    def __init__(self, source, encoding=DEFAULT_ENCODING):
        self.encoding = encoding
        self.data = _read_source(source)
        self.file_hash = hashlib.md5(self.data).hexdigest()
        self._analyses = {}
        self._lock = threading.RLock()

    def _analysis(self, name, start, run):
        key = (name, start)
        entry = self._analyses.get(key)
        if entry is None:
            with self._lock:
                entry = self._analyses.get(key)
                if entry is None:
                    LOGGER.debug("[analysis] running %s start=%s", name, start)
                    try:
                        entry = (True, run())
                    except Exception as e:
                        entry = (False, e)
                    self._analyses[key] = entry
        ok, value = entry
        if not ok:
            raise value
        return value

    def streams(self):
        """Decompressed header and raw body, as bytes."""
        def run():
            header, body = stream.split(self.data)
            return header.getvalue(), body.getvalue()
        return self._analysis('streams', 0, run)

    def version(self):
        return self._analysis(
            'version', 0,
            lambda: version_sniffer.detect(io.BytesIO(self.streams()[0]))
        )

    def header(self, start=None):
        return self._analysis(
            'header', start,
            lambda: header_decoder.parse(
                io.BytesIO(self.streams()[0]), self.version(), start, self.encoding
            )
        )

    def body(self, start=0):
        return self._analysis(
            'body', start,
            lambda: body_decoder.parse(
                io.BytesIO(self.streams()[1]), self.version(), start, self.encoding
            )
        )

    def outcome(self):
        return self._analysis(
            'outcome', 0,
            lambda: outcome_resolver.resolve(self.header(), self.body())
        )

    @property
    def warnings(self):
        """Non-fatal problems met so far."""
        found = []
        warning = self.version().warning
        if warning is not None:
            found.append(warning)
        error = self.body().error
        if error is not None:
            found.append(error)
        return found

    def players(self):
        """Players that took part, with body data merged in."""
        return [p for p in self.outcome().players if not p.spectator]

    def spectators(self):
        return [p for p in self.outcome().players if p.spectator]

    def teams(self):
        return self.outcome().teams

    def pov(self):
        """The player who recorded the game."""
        for player in self.outcome().players:
            if player.owner:
                return player
        raise PlayerNotFound('recording player not found')

    def get_player(self, index):
        for player in self.outcome().players:
            if player.index == index:
                return player
        raise PlayerNotFound(f'no player with index {index}')

    def pregame_chat(self):
        return self.header().chat

    def chat(self):
        return self.body().chat

    def fingerprint(self):
        return self.outcome().fingerprint

    def research_table(self):
        """Researches per player and minute, with the age band at that minute.

        Returns {player index: {minute: [band, [tech ids]]}}; band 0 is the
        dark age, 3 is imperial.
        """
        players = self.players()
        by_minute = {}
        for research in self.body().research:
            minute = _minute(research.time)
            by_minute.setdefault(minute, {}).setdefault(research.player, []).append(research.tech_id)
        table = {p.index: {} for p in players}
        for minute in sorted(by_minute):
            for player in players:
                band = 3
                for i, age in enumerate(AGE_BANDS):
                    reached = _minute(getattr(player, age))
                    if minute <= reached or reached == 0:
                        band = i
                        break
                table[player.index][minute] = [band, by_minute[minute].get(player.number, [])]
        return table

    def map_data(self):
        """What a map renderer needs."""
        map_ = self.header().map
        return dict(
            dimension=map_.dimension,
            tiles=map_.tiles,
            objects=map_.objects,
            colors={p.index: p.color_id for p in self.outcome().players}
        )

    def header_contents(self):
        return self.streams()[0]

    def body_contents(self):
        return self.streams()[1]

    def output(self):
        """Everything, as one dict of plain values."""
        header = self.header()
        body = self.body()
        outcome = self.outcome()
        version = self.version()
        try:
            pov = asdict(self.pov())
        except PlayerNotFound:
            pov = None
        return dict(
            version=version.label,
            game_version=version.game_version,
            save_version=version.save_version,
            file_hash=self.file_hash,
            fingerprint=outcome.fingerprint,
            battle_mode=outcome.battle_mode,
            include_ai=header.include_ai,
            settings=asdict(header.settings),
            map_style=header.settings.map_style.value,
            victory=asdict(header.victory),
            scenario=asdict(header.scenario) if header.scenario else None,
            lobby=header.lobby,
            duration=body.duration,
            multiplayer=body.multiplayer,
            players=[asdict(p) for p in self.players()],
            spectators=[asdict(p) for p in self.spectators()],
            pov=pov,
            teams=outcome.as_dict(),
            pregame_chat=[m.to_list() for m in header.chat],
            chat=[m.to_list() for m in body.chat],
            tributes=[asdict(t) for t in body.tributes],
            units={number: [asdict(u) for u in units] for number, units in body.units.items()},
            research_table=self.research_table(),
            postgame=asdict(body.postgame) if body.postgame else None,
            warnings=[str(w) for w in self.warnings]
        )
