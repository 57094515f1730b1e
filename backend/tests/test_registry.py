import logging

import pytest

from music_guesser.errors import GameError
from music_guesser.services.games import RoomRegistry, RoomSettings, normalize_room_code


@pytest.fixture()
def registry(scheduler):
    channels = []

    def emitter(code):
        channels.append(code)
        return lambda event, payload: None

    reg = RoomRegistry(RoomSettings(), scheduler, emitter, logging.getLogger('music_guesser.tests'))
    reg.channels = channels
    return reg


def test_normalize_room_code():
    assert normalize_room_code('  abcd ') == 'ABCD'
    with pytest.raises(GameError) as exc:
        normalize_room_code('')
    assert exc.value.code == 'MissingFields'
    with pytest.raises(GameError) as exc:
        normalize_room_code('x' * 33)
    assert exc.value.code == 'InvalidRoomCode'


def test_get_or_create_is_case_insensitive(registry):
    room = registry.get_or_create('abcd', 'sid-alice')
    assert room.code == 'ABCD'
    assert registry.get_or_create('ABCD', 'sid-bob') is room
    assert registry.get('Abcd') is room
    assert registry.channels == ['ABCD']
    assert len(registry) == 1


def test_get_unknown_room(registry):
    with pytest.raises(GameError) as exc:
        registry.get('NOPE')
    assert exc.value.code == 'RoomNotFound'
    assert registry.find('NOPE') is None


def test_remove_keeps_occupied_rooms(registry):
    room = registry.get_or_create('ABCD', 'sid-alice')
    room.join('sid-alice', 'Alice')
    assert registry.remove('ABCD') is False

    assert room.handle_disconnect('sid-alice') is True
    assert registry.remove('ABCD') is True
    assert room.closed is True
    assert registry.codes() == []
    assert registry.remove('ABCD') is False


def test_find_by_connection(registry):
    first = registry.get_or_create('ONE', 'sid-alice')
    second = registry.get_or_create('TWO', 'sid-bob')
    first.join('sid-alice', 'Alice')
    second.join('sid-bob', 'Bob')
    second.join('sid-alice', 'Alice')

    assert {r.code for r in registry.find_by_connection('sid-alice')} == {'ONE', 'TWO'}
    assert registry.find_by_connection('sid-bob') == [second]
    assert registry.codes() == ['ONE', 'TWO']
