from predictor import UpstreamError


def test_first_fetch_runs_initial_cycle(client, use_orchestrator):
    use_orchestrator([
        '101, 102, 103, 104', 'Bullish',
        UpstreamError('down'), 'Neutral',
    ])

    response = client.get('/api/dashboard')
    data = response.get_json()

    assert response.status_code == 200
    assert data['status'] == 'ready'
    assert data['loading'] is False
    assert data['error'] is None
    assert data['tokens'] == ['aave', 'maker']
    assert data['selectedToken'] == 'aave'
    assert list(data['tokenData']) == ['aave', 'maker']
    assert data['tokenData']['aave']['predictions'] == [101.0, 102.0, 103.0, 104.0]

    maker = data['tokenData']['maker']
    assert len(maker['predictions']) == 4
    assert all(0.95 * maker['currentPrice'] <= p <= 1.05 * maker['currentPrice'] for p in maker['predictions'])


def test_later_fetches_do_not_start_new_cycles(client, use_orchestrator):
    chat = use_orchestrator(['1, 2, 3, 4', 'Bullish', '5, 6, 7, 8', 'Bearish'])

    client.get('/api/dashboard')
    client.get('/api/dashboard')

    assert len(chat.calls) == 4


def test_refresh_runs_a_new_cycle(client, use_orchestrator):
    use_orchestrator([
        '1, 2, 3, 4', 'Bullish', '5, 6, 7, 8', 'Bearish',
        '9, 10, 11, 12', 'Neutral', '13, 14, 15, 16', 'Bullish',
    ])
    first = client.get('/api/dashboard').get_json()

    response = client.post('/api/dashboard/refresh')
    second = response.get_json()

    assert response.status_code == 202
    assert second['status'] == 'ready'
    assert first['tokenData']['aave']['predictions'] == [1.0, 2.0, 3.0, 4.0]
    assert second['tokenData']['aave']['predictions'] == [9.0, 10.0, 11.0, 12.0]
    assert second['tokenData']['maker']['sentiment'] == 'Bullish'


def test_refresh_while_loading_is_rejected(app, client):
    app.extensions['tokenpulse.store'].begin()

    response = client.post('/api/dashboard/refresh')

    assert response.status_code == 409
    assert response.get_json()['error'] == 'resource_conflict'


def test_failed_cycle_reports_generic_error(client, use_orchestrator):
    use_orchestrator([RuntimeError('unexpected')])

    data = client.get('/api/dashboard').get_json()

    assert data['status'] == 'failed'
    assert data['error'] == 'Failed to fetch data. Please try again later.'
    assert data['tokenData'] == {}


def test_token_details(client, use_orchestrator):
    use_orchestrator(['101, 102, 103, 104', 'Bullish', '5, 6, 7, 8', 'Bearish'])
    client.get('/api/dashboard')

    response = client.get('/api/dashboard/tokens/aave')
    data = response.get_json()

    assert response.status_code == 200
    assert data['record']['sentiment'] == 'Bullish'
    assert [row['horizon'] for row in data['forecast']] == ['1h', '6h', '12h', '24h']
    assert data['chart']['labels'] == ['Now', '1h', '6h', '12h', '24h']
    assert data['chart']['data'][1:] == [101.0, 102.0, 103.0, 104.0]


def test_token_details_before_first_cycle(client):
    response = client.get('/api/dashboard/tokens/aave')

    assert response.status_code == 409


def test_unknown_token_details(client):
    response = client.get('/api/dashboard/tokens/dogecoin')

    assert response.status_code == 404
    assert response.get_json()['error'] == 'resource_not_found'


def test_select_token(client):
    response = client.put('/api/dashboard/selection', json={'token': 'maker'})

    assert response.status_code == 200
    assert response.get_json() == {'selectedToken': 'maker'}


def test_select_unknown_token(client):
    response = client.put('/api/dashboard/selection', json={'token': 'dogecoin'})

    assert response.status_code == 400
    assert response.get_json()['details']['tokens'] == ['aave', 'maker']


def test_select_requires_json_object(client):
    response = client.put('/api/dashboard/selection', data='maker', content_type='text/plain')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'validation_error'


def test_health_reports_metrics(client):
    response = client.get('/health')
    data = response.get_json()

    assert response.status_code == 200
    assert data['service'] == 'tokenpulse'
    assert data['environment'] == 'testing'
    assert 'requests_total' in data['metrics']


def test_metrics_are_prometheus_text(client):
    response = client.get('/metrics')

    assert response.status_code == 200
    assert response.headers['Content-Type'].startswith('text/plain')
    assert b'tokenpulse_requests_total' in response.data


def test_fallbacks_are_exported(client, use_orchestrator):
    use_orchestrator([UpstreamError('down'), UpstreamError('down'), '1, 2, 3, 4', 'Bullish'])
    client.get('/api/dashboard')

    metrics = client.get('/metrics').get_data(as_text=True)
    health = client.get('/health').get_json()['metrics']

    assert 'tokenpulse_upstream_fallbacks_total{kind="predictions",token="aave"} 1' in metrics
    assert 'tokenpulse_upstream_fallbacks_total{kind="sentiment",token="aave"} 1' in metrics
    assert 'token="maker"' not in metrics
    assert health['upstream_fallbacks'] == {'kind:predictions,token:aave': 1, 'kind:sentiment,token:aave': 1}


def test_wrong_method_is_json_error(client):
    response = client.post('/api/dashboard/tokens/aave')

    assert response.status_code == 405
    assert response.get_json()['error'] == 'method_not_allowed'
