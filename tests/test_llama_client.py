from unittest import mock

import pytest
import requests

from predictor import LlamaClient, UpstreamError

from conftest import chat_body, make_response


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return LlamaClient('http://gateway.test/api/llama/', model='llama', timeout=5, session=session)


def test_posts_model_and_messages_to_chat_endpoint(client, session):
    session.post.return_value = make_response(200, chat_body('Bullish'))
    messages = [{'role': 'system', 'content': 'analyst'}, {'role': 'user', 'content': 'sentiment?'}]

    assert client.chat(messages) == 'Bullish'

    session.post.assert_called_once_with(
        'http://gateway.test/api/llama/chat',
        json={'model': 'llama', 'messages': messages},
        headers={'Content-Type': 'application/json'},
        timeout=5,
    )


def test_returns_first_choice_only(client, session):
    body = chat_body('first')
    body['choices'].append({'message': {'content': 'second'}})
    session.post.return_value = make_response(200, body)

    assert client.chat([]) == 'first'


@pytest.mark.parametrize('error', [
    requests.exceptions.ConnectionError('refused'),
    requests.exceptions.ReadTimeout('slow'),
])
def test_network_failures_raise_upstream_error(client, session, error):
    session.post.side_effect = error

    with pytest.raises(UpstreamError):
        client.chat([])


def test_error_status_raises_upstream_error(client, session):
    session.post.return_value = make_response(502, {'error': 'bad_gateway'})

    with pytest.raises(UpstreamError, match='502'):
        client.chat([])


def test_non_json_body_raises_upstream_error(client, session):
    session.post.return_value = make_response(200, b'<html>oops</html>')

    with pytest.raises(UpstreamError):
        client.chat([])


@pytest.mark.parametrize('body', [
    {},
    {'choices': []},
    {'choices': [{'text': 'legacy'}]},
    {'choices': [{'message': {'content': None}}]},
])
def test_missing_content_raises_upstream_error(client, session, body):
    session.post.return_value = make_response(200, body)

    with pytest.raises(UpstreamError):
        client.chat([])
