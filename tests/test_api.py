from conftest import auth, statements_for


def finish_author_phase(g, inspect_game, vote, wrong_rounds=()):
    """Play every author round; voters name the real author unless the round is in ``wrong_rounds``."""
    for _ in range(len(g.players)):
        state = inspect_game(g.code)
        on_stage = state.current_player_id
        for pid in state.order:
            if pid == on_stage:
                continue
            if state.current_round in wrong_rounds:
                target = next(x for x in state.order if x not in (pid, on_stage))
            else:
                target = on_stage
            res = vote(g.code, g.by_id[pid], 'author', target)
            assert res.status_code == 200, res.get_json()


def play_truth_round(g, inspect_game, vote, correct_voters=()):
    state = inspect_game(g.code)
    on_stage = state.current_player_id
    true_id = next(sid for sid, is_true in state.statements[on_stage] if is_true)
    false_id = next(sid for sid, is_true in state.statements[on_stage] if not is_true)
    last = None
    for pid in state.order:
        if pid == on_stage:
            continue
        last = vote(g.code, g.by_id[pid], 'truth', true_id if pid in correct_voters else false_id)
        assert last.status_code == 200, last.get_json()
    return last.get_json()


def test_create_game(client):
    res = client.post('/api/games/create')
    assert res.status_code == 201
    data = res.get_json()
    assert len(data['game_code']) == 6
    assert len(data['admin_token']) == 32


def test_join_and_status(client, flask_app):
    code = client.post('/api/games/create').get_json()['game_code']
    res = client.post('/api/games/join', json={'game_code': code.lower(), 'nickname': 'Alice'})
    assert res.status_code == 201
    alice = res.get_json()
    assert alice['session_token']
    assert 'playerSession' in res.headers.get('Set-Cookie', '')

    status = client.get(f'/api/games/{code}/status', headers=auth(alice)).get_json()
    assert status['game']['status'] == 'lobby'
    assert [p['nickname'] for p in status['players']] == ['Alice']
    assert status['current_player']['id'] == alice['id']
    assert status['current_round'] is None

    anonymous = flask_app.test_client().get(f'/api/games/{code}/status').get_json()
    assert anonymous['current_player'] is None
    assert 'session_token' not in anonymous['players'][0]


def test_join_rejections(client, make_game):
    code = client.post('/api/games/create').get_json()['game_code']
    assert client.post('/api/games/join', json={'game_code': code, 'nickname': 'Al'}).status_code == 201
    dup = client.post('/api/games/join', json={'game_code': code, 'nickname': 'Al'})
    assert dup.status_code == 400
    assert dup.get_json()['kind'] == 'state_conflict'
    assert client.post('/api/games/join', json={'game_code': code, 'nickname': 'A'}).status_code == 400
    assert client.post('/api/games/join', json={'game_code': code}).status_code == 400
    assert client.post('/api/games/join', json={'game_code': 'NOPE99', 'nickname': 'Bob'}).status_code == 404

    started = make_game(('Alice', 'Bob'))
    late = client.post('/api/games/join', json={'game_code': started.code, 'nickname': 'Late'})
    assert late.status_code == 400
    assert late.get_json()['error'] == 'Game has already started'


def test_join_caps_player_count(client):
    code = client.post('/api/games/create').get_json()['game_code']
    for i in range(6):
        assert client.post('/api/games/join', json={'game_code': code, 'nickname': f'P{i}x'}).status_code == 201
    full = client.post('/api/games/join', json={'game_code': code, 'nickname': 'Extra'})
    assert full.status_code == 400


def test_submit_statements_validation(client, inspect_game):
    code = client.post('/api/games/create').get_json()['game_code']
    alice = client.post('/api/games/join', json={'game_code': code, 'nickname': 'Alice'}).get_json()
    url = f'/api/games/{code}/statements'

    two_true = statements_for('Alice')
    two_true[0]['is_true'] = True
    none_true = [dict(s, is_true=False) for s in statements_for('Alice')]
    short = statements_for('Alice')
    short[2]['text'] = ' ab '
    for bad in (two_true, none_true, short, statements_for('Alice')[:2], None):
        res = client.post(url, json={'statements': bad}, headers=auth(alice))
        assert res.status_code == 400
        assert res.get_json()['kind'] == 'validation'

    state = inspect_game(code)
    assert state.statements[alice['id']] == []

    assert client.post(url, json={'statements': statements_for('Alice')}, headers=auth(alice)).status_code == 201
    again = client.post(url, json={'statements': statements_for('Alice')}, headers=auth(alice))
    assert again.status_code == 400
    assert again.get_json()['error'] == 'Statements already submitted'

    state = inspect_game(code)
    assert [is_true for _, is_true in state.statements[alice['id']]] == [False, True, False]


def test_submit_statements_requires_session(flask_app):
    client = flask_app.test_client()
    code = client.post('/api/games/create').get_json()['game_code']
    res = client.post(f'/api/games/{code}/statements', json={'statements': statements_for('X')},
                      headers={'X-Player-Session': 'not-a-real-token'})
    assert res.status_code == 401


def test_start_requires_admin_token(client, make_game, inspect_game):
    g = make_game(start=False)
    res = client.post(f'/api/games/{g.code}/start', json={'admin_token': 'wrong'})
    assert res.status_code == 403
    assert res.get_json()['error'] == 'Invalid admin token'
    assert client.post(f'/api/games/{g.code}/start', json={}).status_code == 403
    assert inspect_game(g.code).status == 'lobby'


def test_start_requires_two_ready_players(client, inspect_game):
    created = client.post('/api/games/create').get_json()
    code = created['game_code']
    alice = client.post('/api/games/join', json={'game_code': code, 'nickname': 'Alice'}).get_json()
    client.post('/api/games/join', json={'game_code': code, 'nickname': 'Bob'})
    client.post(f'/api/games/{code}/statements', json={'statements': statements_for('Alice')}, headers=auth(alice))

    res = client.post(f'/api/games/{code}/start', json={'admin_token': created['admin_token']})
    assert res.status_code == 400
    assert inspect_game(code).status == 'lobby'


def test_start_freezes_order_of_ready_players(client, make_game, inspect_game, vote):
    g = make_game(start=False)
    lurker = client.post('/api/games/join', json={'game_code': g.code, 'nickname': 'Lurker'}).get_json()

    started = client.post(f'/api/games/{g.code}/start', json={'admin_token': g.admin_token}).get_json()
    assert started['status'] == 'voting-author'
    assert started['current_round'] == 1
    assert started['total_rounds'] == 3

    state = inspect_game(g.code)
    assert sorted(state.order) == sorted(p['id'] for p in g.players.values())
    assert state.current_player_id == state.order[0]

    # Starting twice is rejected and does not touch the order
    again = client.post(f'/api/games/{g.code}/start', json={'admin_token': g.admin_token})
    assert again.status_code == 400
    assert inspect_game(g.code).order == state.order

    res = vote(g.code, lurker, 'author', state.order[0])
    assert res.status_code == 400


def test_author_rounds_then_aggregated_results(make_game, inspect_game, vote, client):
    g = make_game()
    state = inspect_game(g.code)
    p1, p2, p3 = state.order

    # Round 1: both guess P1 correctly; the game moves straight on to P2
    vote(g.code, g.by_id[p2], 'author', p1)
    res = vote(g.code, g.by_id[p3], 'author', p1).get_json()
    assert res['auto_advanced'] is True
    assert res['new_status'] == 'voting-author'
    state = inspect_game(g.code)
    assert state.current_round == 2
    assert state.current_player_id == p2
    # Author points are only handed out once every round is in
    assert set(state.scores.values()) == {0}

    # Round 2: everyone wrong; round 3: everyone right
    vote(g.code, g.by_id[p1], 'author', p3)
    vote(g.code, g.by_id[p3], 'author', p1)
    vote(g.code, g.by_id[p1], 'author', p3)
    res = vote(g.code, g.by_id[p2], 'author', p3).get_json()
    assert res['new_status'] == 'results-author'

    state = inspect_game(g.code)
    assert state.status == 'results-author'
    assert state.scores == {p1: 1, p2: 2, p3: 1}

    status = client.get(f'/api/games/{g.code}/status').get_json()
    results = status['author_results']
    assert [r['round'] for r in results] == [1, 2, 3]
    assert [r['player_id'] for r in results] == [p1, p2, p3]
    assert [r['correct_count'] for r in results] == [2, 0, 2]
    assert {v['voter_id']: v['is_correct'] for v in results[0]['votes']} == {p2: True, p3: True}
    assert status['game']['player_order'] == [p1, p2, p3]


def test_truth_round_scores_and_reveals(make_game, inspect_game, vote, client):
    g = make_game(true_index=2)
    finish_author_phase(g, inspect_game, vote, wrong_rounds=(1, 2, 3))
    res = client.post(f'/api/games/{g.code}/auto-advance', json={'from_status': 'results-author'}).get_json()
    assert res == {'success': True, 'advanced': True, 'status': 'voting-truth'}

    state = inspect_game(g.code)
    p1, p2, p3 = state.order
    assert (state.truth_round, state.current_player_id) == (1, p1)
    before = state.scores
    (first_id, _), (second_id, second_true), _ = state.statements[p1]
    assert second_true is True

    assert vote(g.code, g.by_id[p2], 'truth', second_id).status_code == 200
    res = vote(g.code, g.by_id[p3], 'truth', first_id).get_json()
    assert res['new_status'] == 'results-truth'

    after = inspect_game(g.code).scores
    assert after[p2] == before[p2] + 1
    assert after[p3] == before[p3]
    assert after[p1] == before[p1] + 1

    status = client.get(f'/api/games/{g.code}/status').get_json()
    statements = status['current_round']['statements']
    assert [s['is_true'] for s in statements] == [False, True, False]
    assert {r['voter_id']: r['is_correct'] for r in status['current_round']['vote_results']} == {p2: True, p3: False}


def test_full_game_finishes_after_last_truth_round(make_game, inspect_game, vote, client):
    g = make_game()
    finish_author_phase(g, inspect_game, vote)
    client.post(f'/api/games/{g.code}/auto-advance', json={'from_status': 'results-author'})

    for truth_round in (1, 2, 3):
        state = inspect_game(g.code)
        assert (state.status, state.truth_round) == ('voting-truth', truth_round)
        play_truth_round(g, inspect_game, vote, correct_voters=state.order[:1])
        res = client.post(f'/api/games/{g.code}/auto-advance',
                          json={'from_status': 'results-truth', 'round': truth_round}).get_json()
        assert res['advanced'] is True

    final = inspect_game(g.code)
    assert final.status == 'finished'
    assert (final.current_round, final.truth_round) == (3, 3)
    assert all(final.guessed.values())

    # Late timers are no-ops; a bare auto-advance is a conflict
    late = client.post(f'/api/games/{g.code}/auto-advance',
                       json={'from_status': 'results-truth', 'round': 3}).get_json()
    assert late['advanced'] is False
    assert client.post(f'/api/games/{g.code}/auto-advance', json={}).status_code == 400
    again = inspect_game(g.code)
    assert (again.status, again.truth_round, again.scores) == ('finished', 3, final.scores)

    status = client.get(f'/api/games/{g.code}/status').get_json()
    assert len(status['author_results']) == 3
    assert all('is_true' in s for s in status['current_round']['statements'])


def test_auto_advance_is_idempotent(make_game, inspect_game, vote, client):
    g = make_game(('Alice', 'Bob'))
    finish_author_phase(g, inspect_game, vote)
    scores = inspect_game(g.code).scores

    first = client.post(f'/api/games/{g.code}/auto-advance', json={'from_status': 'results-author'}).get_json()
    second = client.post(f'/api/games/{g.code}/auto-advance', json={'from_status': 'results-author'}).get_json()
    assert first['advanced'] is True
    assert second['advanced'] is False
    state = inspect_game(g.code)
    assert (state.status, state.truth_round) == ('voting-truth', 1)
    assert state.scores == scores


def test_auto_advance_only_from_results(make_game, client):
    g = make_game()
    res = client.post(f'/api/games/{g.code}/auto-advance', json={})
    assert res.status_code == 400
    res = client.post(f'/api/games/{g.code}/auto-advance', json={'from_status': 'voting-author'})
    assert res.status_code == 400
    res = client.post(f'/api/games/{g.code}/auto-advance', json={'from_status': 'results-author', 'round': 'x'})
    assert res.status_code == 400


def test_vote_rejections(make_game, inspect_game, vote):
    g = make_game()
    state = inspect_game(g.code)
    p1, p2, p3 = state.order

    # Own on-stage round
    res = vote(g.code, g.by_id[p1], 'author', p2)
    assert res.status_code == 400
    assert res.get_json()['error'] == 'Cannot vote on your own statements'
    # Wrong phase for the vote kind
    some_statement = state.statements[p1][0][0]
    assert vote(g.code, g.by_id[p2], 'truth', some_statement).status_code == 400
    # Bad kind, missing target, self as author
    assert vote(g.code, g.by_id[p2], 'guess', p1).status_code == 400
    assert vote(g.code, g.by_id[p2], 'author', None).status_code == 400
    assert vote(g.code, g.by_id[p2], 'author', p2).status_code == 400

    assert vote(g.code, g.by_id[p2], 'author', p1).status_code == 200
    dup = vote(g.code, g.by_id[p2], 'author', p3)
    assert dup.status_code == 400
    assert dup.get_json()['error'] == 'Already voted this round'

    state = inspect_game(g.code)
    assert state.current_round == 1
    assert state.current_player_id == p1


def test_self_vote_leaves_quorum_untouched(make_game, inspect_game, vote, client):
    g = make_game()
    state = inspect_game(g.code)
    p1, p2, _ = state.order
    vote(g.code, g.by_id[p2], 'author', p1)

    assert vote(g.code, g.by_id[p1], 'author', p2).status_code == 400
    status = client.get(f'/api/games/{g.code}/status').get_json()
    assert status['current_round']['votes_received'] == 1
    assert status['current_round']['votes_needed'] == 2
    assert inspect_game(g.code).current_round == 1


def test_vote_requires_session(make_game, flask_app):
    g = make_game()
    anonymous = flask_app.test_client()
    res = anonymous.post(f'/api/games/{g.code}/vote', json={'vote_type': 'author', 'voted_player_id': 1})
    assert res.status_code == 401


def test_next_phase_closes_round_early(make_game, inspect_game, vote, client):
    g = make_game()
    state = inspect_game(g.code)
    p1, p2, _ = state.order

    assert client.post(f'/api/games/{g.code}/next-phase', json={'admin_token': 'nope'}).status_code == 403

    vote(g.code, g.by_id[p2], 'author', p1)
    res = client.post(f'/api/games/{g.code}/next-phase', json={'admin_token': g.admin_token}).get_json()
    assert res['advanced'] is True
    assert (res['status'], res['current_round']) == ('voting-author', 2)

    status = client.get(f'/api/games/{g.code}/status').get_json()
    assert status['current_round']['votes_received'] == 0


def test_index_and_health(client):
    assert client.get('/').status_code == 200
    assert client.get('/health').get_json() == {'status': 'ok'}


def test_malformed_bodies_are_rejected_without_changes(client, make_game, inspect_game):
    g = make_game(start=False)
    alice = g.players['Alice']

    res = client.post(f'/api/games/{g.code}/start', json={'admin_token': 12345})
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'authorization'

    for body in ({'game_code': g.code, 'nickname': 12345},
                 {'game_code': 12345, 'nickname': 'Dave'},
                 {'game_code': g.code, 'nickname': 'Dave', 'avatar_url': ['x']},
                 ['not', 'an', 'object']):
        res = client.post('/api/games/join', json=body)
        assert res.status_code == 400, body
        assert res.get_json()['kind'] == 'validation'

    res = client.post(f'/api/games/{g.code}/statements', json=[{'text': 'abc', 'is_true': True}],
                      headers=auth(alice))
    assert res.status_code == 400

    state = inspect_game(g.code)
    assert state.status == 'lobby'
    assert len(state.scores) == 3
