import pytest
from httpx import AsyncClient

from inoutboard.broadcaster import Connection

from conftest import drain

pytestmark = pytest.mark.usefixtures("groups")


async def _person(client: AsyncClient, name: str) -> dict:
    resp = await client.post("/persons", json={"name": name, "group": "Operations"})
    return resp.json()


@pytest.mark.asyncio
async def test_resource_lifecycle_broadcasts(
    admin_client: AsyncClient, observer: Connection
) -> None:
    resp = await admin_client.post("/resources", json={"name": "  Truck  "})
    assert resp.status_code == 201
    truck = resp.json()
    assert truck["name"] == "Truck"

    resp = await admin_client.put(f"/resources/{truck['id']}", json={"name": "Box Truck"})
    assert resp.json() == {"id": truck["id"], "name": "Box Truck"}

    resp = await admin_client.delete(f"/resources/{truck['id']}")
    assert resp.json() == {"success": True, "id": truck["id"]}

    assert drain(observer) == [
        {"type": "resource_added", "resource": truck},
        {"type": "resource_updated", "resource": {"id": truck["id"], "name": "Box Truck"}},
        {"type": "resource_removed", "id": truck["id"]},
    ]


@pytest.mark.asyncio
async def test_resources_listed_by_name(admin_client: AsyncClient) -> None:
    for name in ("Van 2", "Car", "Van 1"):
        await admin_client.post("/resources", json={"name": name})
    names = [r["name"] for r in (await admin_client.get("/resources")).json()]
    assert names == ["Car", "Van 1", "Van 2"]


@pytest.mark.asyncio
async def test_delete_resource_used_by_two_people(
    admin_client: AsyncClient, observer: Connection
) -> None:
    van = (await admin_client.post("/resources", json={"name": "Van 1"})).json()
    quinn = await _person(admin_client, "Quinn")
    priya = await _person(admin_client, "Priya")
    sam = await _person(admin_client, "Sam")
    for person in (priya, quinn):
        resp = await admin_client.put(
            f"/persons/{person['id']}", json={"status": "OUT", "resource_id": van["id"]}
        )
        assert resp.json()["resource_name"] == "Van 1"
    drain(observer)

    resp = await admin_client.delete(f"/resources/{van['id']}")
    assert resp.status_code == 200

    events = drain(observer)
    assert [e["type"] for e in events] == [
        "resource_removed",
        "person_updated",
        "person_updated",
    ]
    assert events[0]["id"] == van["id"]
    assert [e["person"]["id"] for e in events[1:]] == [quinn["id"], priya["id"]]

    persons = {p["id"]: p for p in (await admin_client.get("/persons")).json()}
    assert len(persons) == 3
    for person_id in (quinn["id"], priya["id"]):
        assert persons[person_id]["resource_id"] is None
        assert persons[person_id]["resource_name"] is None
        assert persons[person_id]["status"] == "OUT"
    assert persons[sam["id"]]["status"] == "IN"
    for event in events[1:]:
        assert event["person"] == persons[event["person"]["id"]]


@pytest.mark.asyncio
async def test_resource_name_required(
    admin_client: AsyncClient, observer: Connection
) -> None:
    assert (await admin_client.post("/resources", json={})).status_code == 400
    assert (await admin_client.post("/resources", json={"name": "  "})).status_code == 400

    van = (await admin_client.post("/resources", json={"name": "Van"})).json()
    drain(observer)
    resp = await admin_client.put(f"/resources/{van['id']}", json={"name": ""})
    assert resp.status_code == 400
    assert drain(observer) == []


@pytest.mark.asyncio
async def test_missing_resource_is_not_found(
    admin_client: AsyncClient, observer: Connection
) -> None:
    resp = await admin_client.put("/resources/42", json={"name": "Ghost"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"
    assert (await admin_client.delete("/resources/42")).status_code == 404
    assert drain(observer) == []


@pytest.mark.asyncio
async def test_resource_mutations_need_admin(client: AsyncClient, store) -> None:
    van = store.create_resource({"name": "Van"})
    assert (await client.post("/resources", json={"name": "Car"})).status_code == 401
    assert (await client.put(f"/resources/{van.id}", json={"name": "X"})).status_code == 401
    assert (await client.delete(f"/resources/{van.id}")).status_code == 401
    assert (await client.get("/resources")).json() == [{"id": van.id, "name": "Van"}]


@pytest.mark.asyncio
async def test_groups_endpoints(admin_client: AsyncClient) -> None:
    names = [g["name"] for g in (await admin_client.get("/groups")).json()]
    assert names == ["Engineering", "Operations", "Sales"]

    resp = await admin_client.post("/groups", json={"name": "Support"})
    assert resp.status_code == 201
    support = resp.json()

    resp = await admin_client.post("/groups", json={"name": "Support"})
    assert resp.status_code == 400
    assert "exists" in resp.json()["detail"]

    assert (await admin_client.delete(f"/groups/{support['id']}")).status_code == 200
    assert (await admin_client.delete(f"/groups/{support['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_group_mutations_need_admin(client: AsyncClient) -> None:
    assert (await client.post("/groups", json={"name": "Support"})).status_code == 401
    assert (await client.delete("/groups/1")).status_code == 401
