import asyncio

import pytest

from catalog_client.context import ClientContext
from catalog_client.guard import Route
from catalog_client.models import ReservationStatus
from catalog_client.reconciler import BookDetailView, LABEL_OUT_OF_STOCK
from catalog_client.token_store import TokenStore
from catalog_client.views import AdminDashboardView, ProfileView
from conftest import ADMIN, MEMBER

# Mark this module as integration
pytestmark = pytest.mark.integration


def test_full_member_and_admin_lifecycle(api_factory, tmp_path, store):
    """Signup, login, reserve, return and admin overview across separate runs."""
    token_file = str(tmp_path / "token")

    def run(action):
        async def scenario():
            async with ClientContext(api_factory(), TokenStore(token_file)) as ctx:
                return await action(ctx)
        return asyncio.run(scenario())

    # Create an account, then log in with it
    async def signup(ctx):
        result = await ctx.session.signup({"username": "carol", "password": "pw", "email": "carol@example.com",
                                           "firstName": "Carol", "lastName": "Shelf"})
        assert result.success and not ctx.session.authenticated
        login = await ctx.session.login("carol", "pw")
        assert login.success

    run(signup)

    # A later run restores the token and takes the last copy of Dune
    async def reserve(ctx):
        assert ctx.session.authenticated and ctx.session.user is None
        view = BookDetailView("b1", ctx.catalog, ctx.reservations, ctx.session)
        await view.load()
        outcome = await view.reserve()
        view.close()
        return view, outcome

    view, outcome = run(reserve)
    assert outcome.success
    assert view.reserve_label == LABEL_OUT_OF_STOCK
    assert store.books["b1"]["availableCopies"] == 0

    async def profile(ctx):
        page = ProfileView(ctx.guard, ctx.reservations)
        decision = await page.open()
        assert decision.allowed
        active = [r for r in page.reservations if r.status is ReservationStatus.ACTIVE]
        await ctx.reservations.return_reservation(active[0].id)
        admin = AdminDashboardView(ctx.guard, ctx.catalog, ctx.reservations)
        return await admin.open()

    denied = run(profile)
    assert denied.redirect is Route.HOME
    assert store.books["b1"]["availableCopies"] == 1

    async def switch_to_admin(ctx):
        ctx.session.logout()
        await ctx.session.login(*ADMIN)
        dashboard = AdminDashboardView(ctx.guard, ctx.catalog, ctx.reservations)
        assert (await dashboard.open()).allowed
        return dashboard.overview()

    overview = run(switch_to_admin)
    assert overview["total_books"] == 4
    assert overview["active_reservations"] == 0
    assert overview["total_users"] == 1


def test_logged_out_run_cannot_reserve(api_factory, tmp_path, store):
    token_file = str(tmp_path / "token")

    async def scenario():
        async with ClientContext(api_factory(), TokenStore(token_file)) as ctx:
            await ctx.session.login(*MEMBER)
            ctx.session.logout()
        async with ClientContext(api_factory(), TokenStore(token_file)) as ctx:
            view = BookDetailView("b2", ctx.catalog, ctx.reservations, ctx.session)
            await view.load()
            return await view.reserve()

    outcome = asyncio.run(scenario())
    assert outcome.redirect is Route.LOGIN
    assert store.reservations == {}
