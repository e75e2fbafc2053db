"""
Integration tests for the quote builder HTTP API
"""
import io
import pytest
from pypdf import PdfReader
from services.quote_pdf import RenderCoordinator, RenderError


def choose(client, model_id='aps-630', option_ids=('single-loft-12-wide',), **client_fields):
    client.post('/api/selection/model', json={'model_id': model_id})
    for option_id in option_ids:
        client.post(f'/api/selection/options/{option_id}/toggle')
    if client_fields:
        client.post('/api/selection/client', json=client_fields)


@pytest.mark.integration
class TestCatalogEndpoints:
    """Tests for catalog browsing"""

    def test_list_models(self, client):
        response = client.get('/api/catalog/models')
        data = response.get_json()
        assert response.status_code == 200
        assert [m['id'] for m in data['models']][0] == 'aps-630'
        assert len(data['models']) == 5

    def test_list_options_grouped(self, client):
        data = client.get('/api/catalog/options').get_json()
        subjects = [c['subject'] for c in data['categories']]
        assert subjects[0] == 'Construction'
        assert len(subjects) == 5


@pytest.mark.integration
class TestSelectionEndpoints:
    """Tests for the session-scoped selection"""

    def test_empty_selection(self, client):
        data = client.get('/api/selection').get_json()['data']
        assert data['model'] is None
        assert data['canGenerateQuote'] is False
        assert data['missing'] == ['model', 'options', 'fullName', 'zip']

    def test_select_model(self, client):
        response = client.post('/api/selection/model', json={'model_id': 'aps-630'})
        data = response.get_json()['data']
        assert response.status_code == 200
        assert data['model']['name'] == 'The Magnolia'
        assert data['pricing']['subtotal'] == 71475.0

    def test_select_model_by_code(self, client):
        response = client.post('/api/selection/model', json={'modelId': 'APS-544'})
        assert response.get_json()['data']['model']['id'] == 'aps-544'

    def test_select_unknown_model(self, client):
        response = client.post('/api/selection/model', json={'model_id': 'aps-999'})
        assert response.status_code == 404

    def test_select_model_requires_id(self, client):
        response = client.post('/api/selection/model', json={})
        assert response.status_code == 400
        assert response.get_json()['field'] == 'model_id'

    def test_toggle_before_model(self, client):
        response = client.post('/api/selection/options/grab-bar/toggle')
        data = response.get_json()
        assert response.status_code == 400
        assert data['missing'] == ['model']

    def test_toggle_unknown_option(self, client):
        client.post('/api/selection/model', json={'model_id': 'aps-630'})
        assert client.post('/api/selection/options/gold-faucet/toggle').status_code == 404

    def test_toggle_persists_in_session(self, client):
        choose(client, option_ids=('grab-bar', 'syp-trim-package'))
        data = client.get('/api/selection').get_json()['data']
        assert [o['id'] for o in data['options']] == ['grab-bar', 'syp-trim-package']
        assert data['pricing']['optionsTotal'] == 2350.0

        client.post('/api/selection/options/grab-bar/toggle')
        data = client.get('/api/selection').get_json()['data']
        assert [o['id'] for o in data['options']] == ['syp-trim-package']

    def test_model_change_clears_options_and_delivery(self, client):
        choose(client, fullName='Jordan Rivera', zip='78701')
        assert client.get('/api/selection').get_json()['data']['pricing']['deliveryFee'] == 500.0

        data = client.post('/api/selection/model', json={'model_id': 'aps-544'}).get_json()['data']
        assert data['options'] == []
        assert data['pricing']['deliveryFee'] == 0.0
        assert data['missing'] == ['options']

    def test_update_client(self, client):
        choose(client)
        response = client.post('/api/selection/client', json={'fullName': 'Jordan Rivera', 'zip': '78701'})
        data = response.get_json()['data']
        assert data['client']['fullName'] == 'Jordan Rivera'
        assert data['pricing']['deliveryFee'] == 500.0
        assert data['canGenerateQuote'] is True
        assert data['pricing']['total'] == (
            data['pricing']['subtotal'] + data['pricing']['tax'] + data['pricing']['deliveryFee'])

    def test_update_unknown_client_field(self, client):
        response = client.post('/api/selection/client', json={'shoeSize': 11})
        assert response.status_code == 400
        assert response.get_json()['field'] == 'shoeSize'

    def test_update_client_requires_object(self, client):
        assert client.post('/api/selection/client', json=['fullName']).status_code == 400

    def test_reset(self, client):
        choose(client, fullName='Jordan Rivera', zip='78701')
        data = client.post('/api/selection/reset').get_json()['data']
        assert data['model'] is None
        assert data['client']['fullName'] == ''
        assert data['pricing']['total'] == 0.0


@pytest.mark.integration
class TestStatelessPricing:
    """Tests for pricing without a session"""

    def test_price_selection(self, client):
        response = client.post('/api/pricing', json={
            'model_id': 'aps-630',
            'option_ids': ['single-loft-12-wide', 'omit-standard-porch-per-lf'],
            'zip': '78701',
        })
        data = response.get_json()['data']
        assert response.status_code == 200
        assert data['subtotal'] == 71475.0 + 5500.0 - 13.0
        assert data['deliveryFee'] == 500.0
        assert data['total'] == data['subtotal'] + data['tax'] + data['deliveryFee']

    def test_duplicate_option_ids_counted_once(self, client):
        data = client.post('/api/pricing', json={
            'model_id': 'aps-630', 'option_ids': ['grab-bar', 'grab-bar'],
        }).get_json()['data']
        assert data['optionsTotal'] == 100.0
        assert data['deliveryFee'] == 0.0

    def test_pricing_does_not_touch_session(self, client):
        client.post('/api/pricing', json={'model_id': 'aps-630'})
        assert client.get('/api/selection').get_json()['data']['model'] is None

    def test_price_unknown_option(self, client):
        response = client.post('/api/pricing', json={'model_id': 'aps-630', 'option_ids': ['gold-faucet']})
        assert response.status_code == 404

    def test_price_invalid_request(self, client):
        response = client.post('/api/pricing', json={'option_ids': 'grab-bar'})
        assert response.status_code == 400

    def test_delivery_quote(self, client):
        data = client.get('/api/delivery/quote?zip=78701').get_json()['data']
        assert data == {'policy': 'flat', 'fee': 500.0}

    def test_delivery_quote_bad_zip(self, client):
        response = client.get('/api/delivery/quote?zip=78')
        assert response.status_code == 400
        assert response.get_json()['field'] == 'zip'

    def test_financing_monthly(self, client):
        data = client.get('/api/financing/monthly?total=56120').get_json()['data']
        assert data['termMonths'] == 120
        assert 666.0 < data['monthlyPayment'] < 666.3

    def test_financing_overrides(self, client):
        data = client.get('/api/financing/monthly?total=12000&apr=0&years=10').get_json()['data']
        assert data['monthlyPayment'] == 100.0

    def test_financing_tiny_apr(self, client):
        data = client.get('/api/financing/monthly?total=12000&apr=1e-17&years=10').get_json()['data']
        assert data['monthlyPayment'] == pytest.approx(100.0)

    def test_financing_bad_total(self, client):
        assert client.get('/api/financing/monthly?total=lots').status_code == 400

    def test_financing_term_out_of_range(self, client):
        response = client.get('/api/financing/monthly?total=1000&years=500')
        assert response.status_code == 400
        assert response.get_json()['field'] == 'years'

    def test_financing_negative_apr(self, client):
        response = client.get('/api/financing/monthly?total=1000&apr=-0.05')
        assert response.status_code == 422
        assert response.get_json()['field'] == 'apr'


@pytest.mark.integration
class TestQuoteEndpoints:
    """Tests for quote JSON and PDF output"""

    def test_quote_refused_until_ready(self, client):
        choose(client, zip='78701')
        response = client.post('/api/quote')
        data = response.get_json()
        assert response.status_code == 400
        assert data['missing'] == ['fullName']

    def test_quote_json(self, client):
        choose(client, fullName='Jordan Rivera', zip='78701', email='jordan@example.com')
        response = client.post('/api/quote')
        data = response.get_json()['data']
        assert response.status_code == 200
        assert data['quoteId'].startswith('FF-')
        assert data['model']['name'] == 'The Magnolia'
        assert data['pricing']['total'] == (
            data['pricing']['subtotal'] + data['pricing']['tax'] + data['pricing']['deliveryFee'])

    def test_quote_rejects_bad_email(self, client):
        choose(client, fullName='Jordan Rivera', zip='78701', email='nope')
        response = client.post('/api/quote')
        assert response.status_code == 400
        assert response.get_json()['field'] == 'email'

    def test_quote_pdf_download(self, client):
        choose(client, fullName='Jordan Rivera', zip='78701')
        response = client.post('/api/quote/pdf')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        disposition = response.headers['Content-Disposition']
        assert disposition.startswith('attachment')
        assert 'firefly-quote-the-magnolia-FF-' in disposition

        text = '\n'.join(p.extract_text() for p in PdfReader(io.BytesIO(response.data)).pages)
        assert 'Jordan Rivera' in text
        assert 'Single Loft 12 Wide' in text

    def test_quote_pdf_custom_filename(self, client):
        choose(client, fullName='Jordan Rivera', zip='78701')
        response = client.post('/api/quote/pdf', json={'filename': '../Rivera quote'})
        disposition = response.headers['Content-Disposition']
        assert 'Rivera_quote.pdf' in disposition
        assert '..' not in disposition

    def test_quote_pdf_refused_until_ready(self, client):
        choose(client, option_ids=(), fullName='Jordan Rivera', zip='78701')
        response = client.post('/api/quote/pdf')
        assert response.status_code == 400
        assert response.get_json()['missing'] == ['options']

    def test_render_failure_is_retryable(self, app, client):
        def failing_renderer(quote, company):
            raise RenderError("layout failed", quote_id=quote.quote_id)

        app.quote_services.renderer.shutdown()
        app.quote_services.renderer = RenderCoordinator(renderer=failing_renderer)
        choose(client, fullName='Jordan Rivera', zip='78701')

        response = client.post('/api/quote/pdf')
        data = response.get_json()

        assert response.status_code == 502
        assert data['retryable'] is True


@pytest.mark.integration
class TestAppWiring:
    """Tests for app-level behavior"""

    def test_security_headers(self, client):
        response = client.get('/api/catalog/models')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Frame-Options'] == 'SAMEORIGIN'

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/does-not-exist')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Not Found'

    def test_sessions_are_isolated(self, app):
        first = app.test_client()
        second = app.test_client()
        choose(first, fullName='Jordan Rivera', zip='78701')
        assert second.get('/api/selection').get_json()['data']['model'] is None

    def test_selection_responses_not_cached(self, client):
        response = client.get('/api/selection')
        assert response.headers['Cache-Control'] == 'private, no-store'

    def test_pdf_filename_exposed_to_browsers(self, client):
        response = client.get('/api/catalog/models', headers={'Origin': 'https://example.com'})
        assert 'Content-Disposition' in response.headers.get('Access-Control-Expose-Headers', '')

    def test_method_not_allowed_is_json(self, client):
        response = client.get('/api/quote')
        assert response.status_code == 405
        assert response.get_json()['error'] == 'Method Not Allowed'

    def test_shutdown_stops_render_pool(self, app):
        """Test shutting the services down closes the pool and its exit hook"""
        from app_init import shutdown_quote_services

        renderer = app.quote_services.renderer
        shutdown_quote_services(app)

        with pytest.raises(RuntimeError):
            renderer.submit(None, key='s1')
