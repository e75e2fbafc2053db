"""
Tests for the per-session selection state
"""
import pytest
from services.selection import ClientInfo, SelectionState


@pytest.mark.unit
class TestModelSelection:
    """Tests for choosing a model"""

    def test_select_model_prices_base(self, selection, magnolia):
        """Test the base price flows into the pricing"""
        selection.select_model(magnolia)
        assert selection.model is magnolia
        assert selection.pricing.subtotal == 71475.0

    def test_model_change_clears_options_and_delivery(self, selection, magnolia, sample_catalog, sample_options):
        """Test switching model clears options and zeroes the delivery fee"""
        selection.select_model(magnolia)
        selection.toggle_option(sample_options[0])
        selection.update_client_field('zip', '78701')
        assert selection.delivery_fee == 500.0

        selection.select_model(sample_catalog.find_model('aps-544'))

        assert selection.selected_options == []
        assert selection.delivery_fee == 0.0
        assert selection.pricing.delivery_fee == 0.0
        assert selection.pricing.subtotal == 62995.0
        # Client details survive a model change
        assert selection.client.zip == '78701'

    def test_reselecting_same_model_still_resets(self, selection, magnolia, sample_options):
        """Test the reset applies even when the model doesn't change"""
        selection.select_model(magnolia)
        selection.toggle_option(sample_options[2])
        selection.select_model(magnolia)
        assert selection.selected_options == []


@pytest.mark.unit
class TestOptionToggle:
    """Tests for toggling options"""

    def test_toggle_adds_then_removes(self, selection, magnolia, sample_options):
        selection.select_model(magnolia)
        assert selection.toggle_option(sample_options[0]) is True
        assert selection.is_selected('single-loft')
        assert selection.pricing.subtotal == 71475.0 + 5500.0

        assert selection.toggle_option(sample_options[0]) is False
        assert not selection.is_selected('single-loft')
        assert selection.pricing.subtotal == 71475.0

    def test_display_order_is_pick_order(self, selection, magnolia, sample_options):
        """Test options are listed in the order they were picked"""
        selection.select_model(magnolia)
        for option in (sample_options[3], sample_options[0], sample_options[2]):
            selection.toggle_option(option)
        assert [o.id for o in selection.selected_options] == ['syp-trim-package', 'single-loft', 'grab-bar']

    def test_negative_option_reduces_total(self, selection, magnolia, sample_options):
        selection.select_model(magnolia)
        before = selection.pricing.total
        selection.toggle_option(sample_options[1])
        assert selection.pricing.total < before


@pytest.mark.unit
class TestClientFields:
    """Tests for client detail updates"""

    def test_wire_and_attribute_names(self, selection):
        """Test camelCase and snake_case names both work"""
        selection.update_client_field('fullName', 'Jordan Rivera')
        selection.update_client_field('preferred_date', '2026-05-01')
        assert selection.client.full_name == 'Jordan Rivera'
        assert selection.client.preferred_date == '2026-05-01'

    def test_unknown_field_rejected(self, selection):
        with pytest.raises(ValueError):
            selection.update_client_field('favouriteColour', 'teal')

    def test_zip_change_recomputes_delivery(self, selection, magnolia):
        """Test supplying and clearing a ZIP turns the delivery fee on and off"""
        selection.select_model(magnolia)
        selection.update_client_field('zip', '78701')
        assert selection.pricing.delivery_fee == 500.0

        selection.update_client_field('zip', '')
        assert selection.pricing.delivery_fee == 0.0

    def test_values_are_sanitized(self, selection):
        selection.update_client_field('fullName', '  Jordan\x00 Rivera  ')
        assert selection.client.full_name == 'Jordan Rivera'

    def test_client_info_is_immutable(self, selection):
        """Test an update replaces the ClientInfo instead of mutating it"""
        before = selection.client
        selection.update_client_field('email', 'jordan@example.com')
        assert before.email == ''
        assert selection.client is not before


@pytest.mark.unit
class TestListeners:
    """Tests for change notification"""

    def test_listener_sees_recomputed_pricing(self, engine, magnolia, sample_options):
        """Test listeners run after pricing has been recomputed"""
        seen = []
        state = SelectionState(engine, listeners=[lambda s, reason: seen.append((reason, s.pricing.total))])

        state.select_model(magnolia)
        state.toggle_option(sample_options[0])
        state.update_client_field('zip', '78701')

        assert [reason for reason, _ in seen] == ['model', 'options', 'zip']
        assert seen[-1][1] == state.pricing.total

    def test_add_listener_and_reset(self, selection, magnolia):
        reasons = []
        selection.add_listener(lambda s, reason: reasons.append(reason))
        selection.select_model(magnolia)
        selection.reset()

        assert reasons == ['model', 'reset']
        assert selection.model is None
        assert selection.pricing.total == 0.0


@pytest.mark.unit
class TestSessionRoundTrip:
    """Tests for saving the selection in the Flask session"""

    def test_round_trip(self, ready_selection, sample_catalog, engine):
        data = ready_selection.to_dict()
        restored = SelectionState.from_dict(data, sample_catalog, engine)

        assert restored.model.id == 'aps-630'
        assert [o.id for o in restored.selected_options] == ['single-loft', 'syp-trim-package']
        assert restored.client == ready_selection.client
        assert restored.pricing == ready_selection.pricing

    def test_unknown_ids_dropped(self, sample_catalog, engine):
        data = {'model_id': 'aps-999', 'option_ids': ['grab-bar', 'gold-faucet']}
        restored = SelectionState.from_dict(data, sample_catalog, engine)
        assert restored.model is None
        assert [o.id for o in restored.selected_options] == ['grab-bar']

    def test_empty_session(self, sample_catalog, engine):
        restored = SelectionState.from_dict(None, sample_catalog, engine)
        assert restored.model is None
        assert restored.client == ClientInfo()

    def test_to_response_uses_wire_names(self, ready_selection):
        response = ready_selection.to_response()
        assert response['client']['fullName'] == 'Jordan Rivera'
        assert response['pricing']['deliveryFee'] == 500.0
        assert response['model']['id'] == 'aps-630'
