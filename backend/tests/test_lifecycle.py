import copy

import pytest

from bingo.services.games import GameMode, GameStatus, WinningModel, cell_key, check_win
from bingo.services.games.errors import (
    AlreadyJoined,
    AlreadyStarted,
    ConcurrentModification,
    DuplicateItem,
    EmptyItem,
    GameFull,
    GameNotFound,
    InvalidCell,
    InvalidTransition,
    InviteCodeNotFound,
    PermissionDenied,
)


def _joined_game(lifecycle, size=3, model=WinningModel.LINE, items=None):
    game = lifecycle.create('u1', 'Road trip', size, GameMode.JOINED, model, owner_name='Ann')
    for item in items if items is not None else [f'thing {i}' for i in range(size * size)]:
        assert lifecycle.add_item(game.id, item, 'u1').success
    return lifecycle.get_game(game.id)


def test_create_defaults(lifecycle):
    game = lifecycle.create('u1', '  Movies ', 4, 'individual', 'fullBoard', owner_name='Ann')
    assert game.status == GameStatus.CREATING
    assert game.category == 'Movies'
    assert game.players == ['u1']
    assert game.player_names == {'u1': 'Ann'}
    assert game.owner_id == 'u1'
    assert game.items == []
    assert game.player_items == {'u1': []}
    assert game.player_item_counts == {'u1': 0}
    assert game.max_players == 4
    assert game.winner is None
    assert len(game.invite_code) == 6
    assert game.version == 1


def test_create_retries_taken_invite_codes(store):
    import random
    from bingo.services.games import GameLifecycle

    # Same seed -> the second manager would first draw the first game's code
    first = GameLifecycle(store, rng=random.Random(7)).create('u1', 'x', 3)
    second = GameLifecycle(store, rng=random.Random(7)).create('u2', 'y', 3)
    assert first.invite_code != second.invite_code


def test_join_appends_player(lifecycle):
    game = lifecycle.create('u1', 'Cats', 3)
    joined = lifecycle.join(game.invite_code.lower(), 'u2', 'Bob')
    assert joined.players == ['u1', 'u2']
    assert joined.player_names['u2'] == 'Bob'
    assert joined.player_item_counts['u2'] == 0


def test_join_twice_raises_already_joined(lifecycle):
    game = lifecycle.create('u1', 'Cats', 3)
    lifecycle.join(game.invite_code, 'u2')
    with pytest.raises(AlreadyJoined):
        lifecycle.join(game.invite_code, 'u2')


def test_join_unknown_code(lifecycle):
    with pytest.raises(InviteCodeNotFound):
        lifecycle.join('ZZZZZZ', 'u2')


def test_join_full_game(lifecycle):
    game = lifecycle.create('u1', 'Cats', 3, max_players=2)
    lifecycle.join(game.invite_code, 'u2')
    with pytest.raises(GameFull):
        lifecycle.join(game.invite_code, 'u3')


def test_join_after_start(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.start(game.id)
    with pytest.raises(AlreadyStarted):
        lifecycle.join(game.invite_code, 'u2')


def test_leave_removes_everything_keyed_by_player(lifecycle):
    game = lifecycle.create('u1', 'Cats', 3, GameMode.INDIVIDUAL)
    lifecycle.join(game.invite_code, 'u2', 'Bob')
    lifecycle.add_item(game.id, 'purr', 'u2')
    game = lifecycle.leave(game.id, 'u2')
    assert game.players == ['u1']
    assert 'u2' not in game.player_names
    assert 'u2' not in game.player_items
    assert 'u2' not in game.player_item_counts


def test_leave_active_game_drops_board(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.join(game.invite_code, 'u2')
    lifecycle.start(game.id)
    game = lifecycle.leave(game.id, 'u2')
    assert game.status == GameStatus.ACTIVE
    assert 'u2' not in game.player_boards
    assert 'u2' not in game.player_marked_cells


def test_leave_by_non_player_is_a_noop(lifecycle):
    game = lifecycle.create('u1', 'Cats', 3)
    after = lifecycle.leave(game.id, 'stranger')
    assert after.version == game.version


def test_add_item_trims_and_rejects_duplicates(lifecycle):
    game = lifecycle.create('u1', 'Films', 3)
    assert lifecycle.add_item(game.id, 'Movies', 'u1').success
    result = lifecycle.add_item(game.id, '  Movies  ', 'u1')
    assert not result.success
    assert isinstance(result.error, DuplicateItem)
    assert result.to_dict()['code'] == 'duplicate_item'
    # Exact match only: different case is a different item
    assert lifecycle.add_item(game.id, 'movies', 'u1').success
    assert lifecycle.get_game(game.id).items == ['Movies', 'movies']


def test_add_item_rejects_blank_text(lifecycle):
    game = lifecycle.create('u1', 'Films', 3)
    for text in ['', '   ', None]:
        result = lifecycle.add_item(game.id, text, 'u1')
        assert not result.success
        assert isinstance(result.error, EmptyItem)
    assert lifecycle.get_game(game.id).items == []


def test_individual_items_are_scoped_per_player(lifecycle):
    game = lifecycle.create('u1', 'Films', 3, GameMode.INDIVIDUAL)
    lifecycle.join(game.invite_code, 'u2')
    assert lifecycle.add_item(game.id, 'Jaws', 'u1').success
    # Same text in another player's private list is fine
    assert lifecycle.add_item(game.id, 'Jaws', 'u2').success
    assert not lifecycle.add_item(game.id, 'Jaws ', 'u2').success
    game = lifecycle.get_game(game.id)
    assert game.items == []
    assert game.player_items == {'u1': ['Jaws'], 'u2': ['Jaws']}
    assert game.player_item_counts == {'u1': 1, 'u2': 1}


def test_joined_counts_follow_shared_list(lifecycle):
    game = lifecycle.create('u1', 'Films', 3)
    lifecycle.join(game.invite_code, 'u2')
    lifecycle.add_item(game.id, 'a', 'u2')
    lifecycle.add_item(game.id, 'b', 'u1')
    assert lifecycle.get_game(game.id).player_item_counts == {'u1': 2, 'u2': 2}


def test_remove_item_filter_semantics(lifecycle):
    game = _joined_game(lifecycle, items=['a', 'b', 'c'])
    assert lifecycle.remove_item(game.id, 1).items == ['a', 'c']
    assert lifecycle.remove_item(game.id, 10).items == ['a', 'c']
    assert lifecycle.remove_item(game.id, -1).items == ['a', 'c']


def test_remove_private_item(lifecycle):
    game = lifecycle.create('u1', 'Films', 3, GameMode.INDIVIDUAL)
    lifecycle.add_item(game.id, 'a', 'u1')
    lifecycle.add_item(game.id, 'b', 'u1')
    assert lifecycle.remove_item(game.id, 0, 'u1').player_items['u1'] == ['b']


def test_items_are_frozen_after_start(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.start(game.id)
    with pytest.raises(InvalidTransition):
        lifecycle.add_item(game.id, 'late', 'u1')
    with pytest.raises(InvalidTransition):
        lifecycle.remove_item(game.id, 0)


def test_start_deals_boards_and_line_win_scenario(lifecycle):
    game = _joined_game(lifecycle)
    game = lifecycle.start(game.id)
    assert game.status == GameStatus.ACTIVE
    board = game.player_boards['u1']
    assert sorted(board) == sorted(cell_key(r, c) for r in range(3) for c in range(3))
    assert sorted(board.values()) == sorted(game.items)
    assert set(game.player_marked_cells['u1'].values()) == {False}

    for col in range(3):
        game = lifecycle.mark_cell(game.id, 'u1', 0, col)
    assert check_win(game.player_marked_cells['u1'], 3, 'line')


def test_start_deals_individual_pools(lifecycle):
    game = lifecycle.create('u1', 'Films', 3, GameMode.INDIVIDUAL)
    lifecycle.join(game.invite_code, 'u2')
    for i in range(9):
        lifecycle.add_item(game.id, f'mine {i}', 'u1')
        lifecycle.add_item(game.id, f'yours {i}', 'u2')
    game = lifecycle.start(game.id)
    assert all(v.startswith('mine') for v in game.player_boards['u1'].values())
    assert all(v.startswith('yours') for v in game.player_boards['u2'].values())


def test_start_with_short_pools_pads_boards(lifecycle):
    game = lifecycle.create('u1', 'Films', 3, GameMode.INDIVIDUAL)
    lifecycle.join(game.invite_code, 'u2')
    lifecycle.add_item(game.id, 'only one', 'u1')
    game = lifecycle.get_game(game.id)
    assert game.start_shortfalls() == {'u1': 8, 'u2': 9}
    assert not game.can_start()

    game = lifecycle.start(game.id)
    assert list(game.player_boards['u1'].values()).count('') == 8
    assert set(game.player_boards['u2'].values()) == {''}


def test_start_only_once(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.start(game.id)
    with pytest.raises(InvalidTransition):
        lifecycle.start(game.id)


def test_start_missing_game(lifecycle):
    with pytest.raises(GameNotFound):
        lifecycle.start('missing')


def test_mark_cell_toggles(lifecycle):
    game = lifecycle.start(_joined_game(lifecycle).id)
    game = lifecycle.mark_cell(game.id, 'u1', 1, 2)
    assert game.player_marked_cells['u1']['1-2'] is True
    game = lifecycle.mark_cell(game.id, 'u1', 1, 2)
    assert game.player_marked_cells['u1']['1-2'] is False


def test_mark_cell_rules(lifecycle):
    game = _joined_game(lifecycle)
    with pytest.raises(InvalidTransition):
        lifecycle.mark_cell(game.id, 'u1', 0, 0)
    lifecycle.start(game.id)
    with pytest.raises(InvalidCell):
        lifecycle.mark_cell(game.id, 'u1', 3, 0)
    # No board for this user: nothing changes
    before = lifecycle.get_game(game.id)
    after = lifecycle.mark_cell(game.id, 'ghost', 0, 0)
    assert after.version == before.version


def test_claim_win_completes_game(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.join(game.invite_code, 'u2')
    lifecycle.start(game.id)
    for i in range(3):
        lifecycle.mark_cell(game.id, 'u2', i, i)
        if i < 2:
            assert not lifecycle.claim_win(game.id, 'u2')
    assert lifecycle.claim_win(game.id, 'u2')
    game = lifecycle.get_game(game.id)
    assert game.status == GameStatus.COMPLETED
    assert game.winner == 'u2'
    # Only one winner
    assert not lifecycle.claim_win(game.id, 'u1')
    with pytest.raises(InvalidTransition):
        lifecycle.mark_cell(game.id, 'u1', 0, 0)


def test_full_board_model_needs_every_cell(lifecycle):
    game = _joined_game(lifecycle, model=WinningModel.FULL_BOARD)
    lifecycle.start(game.id)
    cells = [(r, c) for r in range(3) for c in range(3)]
    for r, c in cells[:-1]:
        lifecycle.mark_cell(game.id, 'u1', r, c)
    assert not lifecycle.claim_win(game.id, 'u1')
    lifecycle.mark_cell(game.id, 'u1', *cells[-1])
    assert lifecycle.claim_win(game.id, 'u1')


def test_cancel_transitions(lifecycle):
    creating = lifecycle.create('u1', 'x', 3)
    assert lifecycle.cancel(creating.id).status == GameStatus.CANCELLED
    # Cancelling twice is harmless
    assert lifecycle.cancel(creating.id).status == GameStatus.CANCELLED

    active = lifecycle.start(_joined_game(lifecycle).id)
    assert lifecycle.cancel(active.id).status == GameStatus.CANCELLED


def test_cancel_completed_game_is_rejected(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.start(game.id)
    for c in range(3):
        lifecycle.mark_cell(game.id, 'u1', 2, c)
    assert lifecycle.claim_win(game.id, 'u1')
    with pytest.raises(InvalidTransition):
        lifecycle.cancel(game.id)


def test_cancelled_game_cannot_start(lifecycle):
    game = _joined_game(lifecycle)
    lifecycle.cancel(game.id)
    with pytest.raises(InvalidTransition):
        lifecycle.start(game.id)


def test_delete(lifecycle):
    game = lifecycle.create('u1', 'x', 3)
    lifecycle.delete(game.id)
    with pytest.raises(GameNotFound):
        lifecycle.get_game(game.id)
    with pytest.raises(GameNotFound):
        lifecycle.delete(game.id)


def _serve_stale_reads(monkeypatch, store, stale):
    # Reads keep returning the snapshot taken before someone else's write
    monkeypatch.setattr(store, 'get', lambda ref: copy.deepcopy(stale))


def test_add_item_on_stale_read_raises_concurrent_modification(lifecycle, store, monkeypatch):
    game = lifecycle.create('u1', 'x', 3)
    stale = store.get(store.document('games', game.id))
    lifecycle.add_item(game.id, 'first', 'u1')

    _serve_stale_reads(monkeypatch, store, stale)
    with pytest.raises(ConcurrentModification):
        lifecycle.add_item(game.id, 'second', 'u1')
    monkeypatch.undo()
    assert lifecycle.get_game(game.id).items == ['first']


def test_start_on_stale_read_raises_concurrent_modification(lifecycle, store, monkeypatch):
    game = _joined_game(lifecycle)
    stale = store.get(store.document('games', game.id))
    lifecycle.join(game.invite_code, 'u2')

    _serve_stale_reads(monkeypatch, store, stale)
    with pytest.raises(ConcurrentModification):
        lifecycle.start(game.id)
    monkeypatch.undo()
    game = lifecycle.get_game(game.id)
    assert game.status == GameStatus.CREATING
    assert game.players == ['u1', 'u2']
    assert game.player_boards == {}


def test_individual_add_item_rejects_non_players(lifecycle):
    game = lifecycle.create('u1', 'Films', 3, GameMode.INDIVIDUAL)
    with pytest.raises(PermissionDenied):
        lifecycle.add_item(game.id, 'Jaws', 'stranger')
    assert lifecycle.get_game(game.id).player_items == {'u1': []}
