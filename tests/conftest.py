import json
import random

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from app import create_app
from predictor import PredictionOrchestrator


TEST_TOKENS = ['aave', 'maker']


class FakeChatClient:
    """Stands in for LlamaClient; answers are consumed in call order."""

    def __init__(self, answers=()):
        self.answers = list(answers)
        self.calls = []
        self.closed = False

    def chat(self, messages):
        self.calls.append(messages)
        if not self.answers:
            raise AssertionError("unexpected chat call")
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self):
        self.closed = True


def make_response(status_code=200, body=None, headers=None):
    """Build a real requests.Response with the given JSON or bytes body."""
    response = requests.Response()
    response.status_code = status_code
    if isinstance(body, (dict, list)):
        response._content = json.dumps(body).encode()
        response.headers = CaseInsensitiveDict({'Content-Type': 'application/json'})
    else:
        response._content = body or b''
        response.headers = CaseInsensitiveDict()
    if headers:
        response.headers.update(headers)
    response.url = 'http://upstream.test/v1/chat'
    return response


def chat_body(content):
    return {'choices': [{'message': {'role': 'assistant', 'content': content}}]}


@pytest.fixture
def static_dir(tmp_path):
    build = tmp_path / 'build'
    (build / 'static' / 'js').mkdir(parents=True)
    (build / 'index.html').write_text('<!doctype html><div id="root"></div>')
    (build / 'static' / 'js' / 'main.js').write_text('console.log("tokenpulse");')
    return build


@pytest.fixture
def app(static_dir):
    app = create_app({
        'STATIC_FOLDER': str(static_dir),
        'TOKENS': list(TEST_TOKENS),
    }, environment='testing')
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def use_orchestrator(app):
    """Install an orchestrator factory backed by a FakeChatClient."""

    def install(answers, seed=1):
        chat_client = FakeChatClient(answers)

        def factory():
            return PredictionOrchestrator(chat_client, app.config['TOKENS'], rng=random.Random(seed))

        app.extensions['tokenpulse.orchestrator_factory'] = factory
        return chat_client

    return install
