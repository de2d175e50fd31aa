"""HTTP client for the CMS JSON API, as used by admin tooling.

Tokens live in an explicit ``TokenHolder`` handed to the client. Requests that
come back 401 go through ``RefreshOn401``: one refresh, one retry, and on a
second failure the holder is cleared and the logout callback fires.
"""
import logging

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class ApiRequestError(Exception):
    """Failed API call carrying the server's message and HTTP status."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status


class TokenHolder:
    def __init__(self, access_token=None, refresh_token=None, user=None):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.user = user

    @property
    def is_authenticated(self):
        return bool(self.access_token)

    def set(self, access_token=None, refresh_token=None, user=None):
        if access_token is not None:
            self.access_token = access_token
        if refresh_token is not None:
            self.refresh_token = refresh_token
        if user is not None:
            self.user = user

    def clear(self):
        self.access_token = None
        self.refresh_token = None
        self.user = None


def _rewind(files):
    """Seek upload streams back to the start so a retried request re-sends them."""
    for value in (files or {}).values():
        stream = value[1] if isinstance(value, tuple) else value
        if hasattr(stream, 'seek') and getattr(stream, 'seekable', lambda: True)():
            stream.seek(0)


class RefreshOn401:
    """Response policy: refresh the access token once on 401 and retry once."""

    def __init__(self, tokens, refresh, on_logout=None):
        self.tokens = tokens
        self.refresh = refresh
        self.on_logout = on_logout

    def logout(self):
        self.tokens.clear()
        if self.on_logout is not None:
            self.on_logout()

    def __call__(self, send):
        response = send()
        if response.status_code != 401:
            return response

        if not self.tokens.refresh_token:
            self.logout()
            return response
        try:
            access_token = self.refresh(self.tokens.refresh_token)
        except (ApiRequestError, requests.RequestException):
            logger.info('Access token refresh failed; logging out.')
            access_token = None
        if not access_token:
            self.logout()
            return response

        self.tokens.set(access_token=access_token)
        retried = send()
        if retried.status_code == 401:
            self.logout()
        return retried


class ApiClient:
    def __init__(self, base_url, tokens=None, session=None, on_logout=None, timeout=DEFAULT_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.tokens = tokens if tokens is not None else TokenHolder()
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.policy = RefreshOn401(self.tokens, self._refresh_access_token, on_logout=on_logout)

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _payload(response):
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None
        if 200 <= response.status_code < 300:
            return body
        message = None
        if isinstance(body, dict):
            message = body.get('message')
        raise ApiRequestError(message or response.reason or 'An unknown error occurred', response.status_code)

    def _refresh_access_token(self, refresh_token):
        response = self.session.request(
            'POST',
            self._url('/auth/refresh-token'),
            json={'refreshToken': refresh_token},
            timeout=self.timeout,
        )
        return (self._payload(response) or {}).get('accessToken')

    def request(self, method, path, json=None, params=None, files=None, authenticated=True):
        url = self._url(path)

        def send():
            _rewind(files)
            headers = {}
            if authenticated and self.tokens.access_token:
                headers['Authorization'] = f'Bearer {self.tokens.access_token}'
            return self.session.request(
                method,
                url,
                json=json,
                params=params,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )

        try:
            response = self.policy(send) if authenticated else send()
        except requests.RequestException as error:
            logger.warning('API %s %s failed: %s', method, path, error)
            raise ApiRequestError(str(error) or 'Network error') from error
        return self._payload(response)

    # -- auth ------------------------------------------------------------

    def login(self, email, password):
        result = self.request('POST', '/auth/login', json={'email': email, 'password': password}, authenticated=False)
        self.tokens.set(result['accessToken'], result['refreshToken'], result.get('user'))
        return result

    def logout(self):
        self.policy.logout()

    # -- sections --------------------------------------------------------

    def list_sections(self, language='en', section_type=None):
        params = {'language': language}
        if section_type:
            params['type'] = section_type
        return self.request('GET', '/sections', params=params)

    def get_section(self, section_id, language='en', admin=False):
        params = {'language': language}
        if admin:
            params['admin'] = 'true'
        return self.request('GET', f'/sections/{section_id}', params=params)

    def get_section_by_type(self, section_type, language='en'):
        return self.request('GET', f'/sections/type/{section_type}', params={'language': language})

    def create_section(self, data):
        return self.request('POST', '/sections', json=data)

    def update_section(self, section_id, data):
        return self.request('PUT', f'/sections/{section_id}', json=data)

    def delete_section(self, section_id):
        return self.request('DELETE', f'/sections/{section_id}')

    def upload_section_file(self, filename, stream, mimetype):
        return self.request('POST', '/sections/upload', files={'file': (filename, stream, mimetype)})

    # -- articles --------------------------------------------------------

    def list_articles(self, language='en', published=None):
        params = {'language': language}
        if published is not None:
            params['published'] = 'true' if published else 'false'
        return self.request('GET', '/articles', params=params)

    def get_article(self, article_id, language='en'):
        return self.request('GET', f'/articles/{article_id}', params={'language': language})

    def get_article_by_slug(self, slug, language='en'):
        """Find a published article by slug.

        Lists published articles, picks the one with the slug, then fetches
        it by id: two round trips.
        """
        articles = self.list_articles(language, published=True) or []
        match = next((article for article in articles if article.get('slug') == slug), None)
        if match is None:
            raise ApiRequestError('Article not found', 404)
        return self.get_article(match['id'], language)

    def create_article(self, data):
        return self.request('POST', '/articles', json=data)

    def update_article(self, article_id, data):
        return self.request('PUT', f'/articles/{article_id}', json=data)

    def delete_article(self, article_id):
        return self.request('DELETE', f'/articles/{article_id}')

    def upload_article_file(self, filename, stream, mimetype):
        return self.request('POST', '/articles/upload', files={'file': (filename, stream, mimetype)})

    # -- contact ---------------------------------------------------------

    def get_contact_info(self, language='en'):
        return self.request('GET', '/contact/info', params={'language': language})

    def update_contact_info(self, data):
        return self.request('PUT', '/contact/info', json=data)

    def send_contact_message(self, data):
        return self.request('POST', '/contact/send', json=data, authenticated=False)
