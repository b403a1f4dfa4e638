"""Suite reading builtin services while loading."""

from pytest_ftr import describe, it


def provider(api):
    config = api.get_config()
    retry = api.get_service('retry')
    pages = api.get_page_objects(['home'])

    @describe('services', tags=[f'try-{config.get("timeouts.try")}'])
    def _():
        it(f'retries for {retry.timeout}ms', lambda: None)
        it(f'has {pages["home"]["title"]}', lambda: None)
