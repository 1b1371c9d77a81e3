"""Build recorded game bytes for tests.

Every builder emits exactly what the decoders expect, so tests can set one
field at a time and check how it comes back.
"""

import struct
import zlib

ALLY = 0
ENEMY = 3
HUMAN = 2
SPECTATOR = 6
GAIA = 0

AOC = dict(game_version='VER 9.4', save=11.76)
UP15 = dict(game_version='VER 9.F', save=12.34)
HD = dict(game_version='VER 9.4', save=12.5)
DE = dict(game_version='VER 9.4', save_int=63 * 65536)


def player(name, team=0, civ=1, color=0, type_id=HUMAN, position=(10.0, 20.0), resources=3):
    """A roster player; `team` only drives the default stance matrix."""
    return dict(name=name, team=team, civ=civ, color=color, type=type_id,
                position=position, resources=resources)


class Layout:
    """Version dependent switches, mirroring what the decoders check."""

    def __init__(self, game_version='VER 9.4', save=11.76, save_int=None):
        self.game_version = game_version
        self.save_int = save_int
        if save_int is not None:
            save = 37.0 if save_int == 37 else save_int / 65536
        self.save = round(save, 2)
        aoc_family = game_version == 'VER 9.4'
        self.de = aoc_family and self.save >= 12.97
        self.newer = aoc_family and self.save >= 12.36
        self.encoding = 'utf-8' if self.newer else 'gbk'

    @property
    def tile_format(self):
        if not self.de:
            return '<xbbx'
        return '<bxxb6x' if self.save >= 62 else '<bxb6x'


def de_string(text):
    raw = text.encode('utf-8')
    return b'\x60\x0a' + struct.pack('<h', len(raw)) + raw


def hd_string(text):
    raw = text.encode('utf-8')
    return struct.pack('<h', len(raw)) + b'\x60\x0a' + raw


def lobby_metadata(layout, guid=bytes(range(16)), lobby='Lobby', mod='Mod'):
    string = de_string if layout.de else hd_string
    return guid + string(lobby) + string(mod)


def version_block(layout, build=100, timestamp=200, metadata=None):
    out = struct.pack('<7sx', layout.game_version.encode('ascii'))
    if layout.save_int is not None:
        out += struct.pack('<fI', -1.0, layout.save_int)
    else:
        out += struct.pack('<f', layout.save)
    if layout.de:
        if layout.save >= 25.22:
            out += struct.pack('<I', build)
        if layout.save >= 26.16:
            out += struct.pack('<I', timestamp)
    if layout.newer:
        if metadata is None:
            metadata = lobby_metadata(layout)
        out += struct.pack('<I', len(metadata)) + metadata
    return out


def metadata_section(layout, num_players, ai=False, speed=1.5, owner_id=1, cheats=False):
    out = struct.pack('<I', 1 if ai else 0)
    if ai:
        out += b'\x07' * 10 + b'\x00' * 4096
    out += struct.pack('<24xf17xhbxb', speed, owner_id, num_players, 1 if cheats else 0)
    if layout.save < 61.5:
        out += bytes(60)
    else:
        out += bytes(24 + num_players * 4)
    return out


def settings_section(layout, map_id=9, difficulty=0, reveal=0, map_size=2, population=8,
                     game_type=0, lock_teams=False, victory=(0, 900, 9000)):
    out = struct.pack('<II', map_id, difficulty)
    out += struct.pack('<I4xIIbb', reveal, map_size, population, game_type, 1 if lock_teams else 0)
    if layout.newer:
        out += bytes(5)
        if layout.save >= 13.13:
            out += bytes(4)
        if layout.save >= 25.22:
            out += bytes(1)
    out += struct.pack('<III', *victory)
    return out


def map_object(class_id=70, owner=1, unit_type_id=83, instance_id=1, x=1.5, y=2.5):
    return struct.pack('<bBH14xIxff', class_id, owner, unit_type_id, instance_id, x, y)


def map_section(layout, width=4, height=3, zones=1, all_visible=False, tiles=None,
                obstructions=1, restore_time=0, objects=(), object_count=None):
    tile_num = width * height
    if tiles is None:
        tiles = [((i % 5), 1) for i in range(tile_num)]
    out = bytes(8) if layout.de else b''
    out += struct.pack('<III', width, height, zones)
    for _ in range(zones):
        out += bytes(2048 + tile_num * 2 if layout.newer else 1275 + tile_num)
        out += struct.pack('<I2f', 2, 1.0, 2.0)
        out += bytes(4)
    out += struct.pack('<bx', 1 if all_visible else 0)
    for terrain, elevation in tiles:
        out += struct.pack(layout.tile_format, terrain, elevation)
    out += struct.pack('<I4x', obstructions) + bytes(obstructions * 4)
    for _ in range(obstructions):
        out += struct.pack('<I', 1) + bytes(8)
    visibility = 2 * 2 * 4
    if layout.save >= 61.5:
        visibility *= 2
    out += struct.pack('<II', 2, 2) + bytes(visibility)
    out += struct.pack('<I', restore_time)
    out += struct.pack('<I', len(objects) if object_count is None else object_count)
    out += b''.join(objects)
    return out


def default_diplomacy(records):
    """Stances from team ids: same non-zero team means ally."""
    stances = {}
    for i, a in enumerate(records):
        for j, b in enumerate(records):
            if i == j or (a['team'] and a['team'] == b['team']):
                stances[i, j] = ALLY
            else:
                stances[i, j] = ENEMY
    return stances


def players_section(layout, players, diplomacy=None):
    """Player records, Gaia first. `diplomacy` overrides single stances."""
    gaia = player('Gaia', type_id=GAIA, civ=0, resources=0)
    records = [gaia] + list(players)
    count = len(records)
    rep = 9 if layout.save < 61.5 else count
    stances = default_diplomacy(records)
    stances.update(diplomacy or {})
    resource_size = 8 if layout.save >= 63 else 4
    out = struct.pack('<I', count)
    for number, record in enumerate(records):
        row = [stances.get((number, j), ENEMY) for j in range(rep)]
        name = record['name'].encode(layout.encoding)
        out += struct.pack(f'<bx{count}x{rep}i5xh', record['type'], *row, len(name))
        out += name
        out += struct.pack('<xIx', record['resources'])
        out += bytes(record['resources'] * resource_size)
        x, y = record['position']
        out += struct.pack('<xff9xB3xBx', x, y, record['civ'], record['color'])
    return out


def lobby_section(layout, chat=(), seed=42):
    out = struct.pack('<I', len(chat))
    for line in chat:
        raw = line.encode(layout.encoding) + b'\x00'
        out += struct.pack('<I', len(raw)) + raw
    if layout.de:
        out += struct.pack('<i', seed)
    return out


def scenario_section(filename='scenario.scx', instructions='Win the game'):
    filename = filename.encode('ascii')
    instructions = instructions.encode('ascii')
    out = struct.pack('<f', 1.22) + bytes(4)
    out += struct.pack('<h', len(filename)) + filename + bytes(24)
    out += struct.pack('<h', len(instructions)) + instructions
    return out


def build_header(players, version=AOC, metadata=None, num_players=None, ai=False, speed=1.5,
                 owner_id=1, cheats=False, settings=None, map_options=None, diplomacy=None,
                 chat=(), seed=42, scenario=None):
    """Decompressed header bytes."""
    layout = Layout(**version)
    settings = dict(settings or {})
    if num_players is None:
        num_players = len(players) + 1
    out = version_block(layout, metadata=metadata)
    out += metadata_section(layout, num_players, ai=ai, speed=speed, owner_id=owner_id, cheats=cheats)
    out += settings_section(layout, **settings)
    out += map_section(layout, **(map_options or {}))
    out += players_section(layout, players, diplomacy)
    out += lobby_section(layout, chat, seed)
    if settings.get('game_type') in (3, 4):
        out += scenario_section(**(scenario or {}))
    return out


def body_meta(log_version=5, checksum_interval=500, multiplayer=1, rec_owner=1, reveal_map=0,
              sequence_numbers=0, chapters=0):
    return struct.pack('<7I', log_version, checksum_interval, multiplayer, rec_owner,
                       reveal_map, sequence_numbers, chapters)


def sync(increment, marker=1):
    out = struct.pack('<III', 2, increment, marker)
    if marker == 0:
        out += bytes(28)
    return out + bytes(12)


def action(payload):
    return struct.pack('<II', 1, len(payload)) + payload + bytes(4)


def research(player_id, tech_id, object_id=1):
    return action(struct.pack('<B3xIhh', 0x65, object_id, player_id, tech_id))


def resign(player_id, disconnected=False):
    return action(struct.pack('<Bbbb', 0x0b, player_id, player_id, 1 if disconnected else 0))


def build(player_id, building_id, x=5.0, y=6.0):
    return action(struct.pack('<BbxxffI', 0x66, player_id, x, y, building_id))


def tribute(player_from, player_to, resource, amount, fee=0.3):
    return action(struct.pack('<Bbbbff', 0x6c, player_from, player_to, resource, amount, fee))


def train(player_id, unit_type_id, amount=1, object_id=1):
    return action(struct.pack('<BbxxIhh', 0x77, player_id, object_id, unit_type_id, amount))


def chat(text, encoding='gbk'):
    raw = text.encode(encoding)
    return struct.pack('<IiI', 4, -1, len(raw)) + raw


def start():
    return struct.pack('<Ii', 4, 500) + bytes(20)


def viewlock():
    return struct.pack('<I', 3) + bytes(12)


def savepoint(length=16):
    return struct.pack('<II', 6, length) + bytes(length)


def postgame(players, scenario_filename='', duration=0):
    """Post-game block; `players` maps slot number (1-8) to field dicts."""
    out = struct.pack('<32sI4x', scenario_filename.encode('ascii'), duration)
    for number in range(1, 9):
        entry = players.get(number)
        if entry is None:
            out += struct.pack('<16sHbBBB2xiii', b'', 0, 0, 0, 0, 0, 0, 0, 0)
            continue
        out += struct.pack(
            '<16sHbBBB2xiii', entry['name'].encode('ascii'), entry.get('score', 0),
            1 if entry.get('victory') else 0, entry.get('civ', 1), entry.get('color', 1),
            entry.get('team', 1), entry.get('feudal', 0), entry.get('castle', 0), entry.get('imperial', 0)
        )
    return out


def build_body(*operations, meta=True, summary=None):
    out = body_meta() if meta else b''
    out += b''.join(operations)
    if summary is not None:
        out += summary
    return out


def compress(data):
    compressor = zlib.compressobj(wbits=-15)
    return compressor.compress(data) + compressor.flush()


def build_file(header, body, chapter_address=0):
    """Full recording; a chapter address is written unless it is None."""
    compressed = compress(header)
    prefix = 4 if chapter_address is None else 8
    out = struct.pack('<I', prefix + len(compressed))
    if chapter_address is not None:
        out += struct.pack('<I', chapter_address)
    return out + compressed + body
