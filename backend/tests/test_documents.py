from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import AsyncClient

from tests.conftest import (
    PASSWORD,
    PDF_BYTES,
    add_member,
    auth_headers,
    login_headers,
    own_member_id,
    pdf_file,
)


async def upload_document(client: AsyncClient, headers: dict, member_id: str, **fields) -> dict:
    data = {"title": "Insurance card", **fields}
    response = await client.post(
        f"/api/v1/health/documents/{member_id}",
        data=data,
        files=pdf_file("card.pdf"),
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["document"]


@pytest.mark.asyncio
async def test_upload_and_list_documents(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)

    older = await upload_document(client, headers, member_id, title="Older", uploadDate="2023-05-01")
    newer = await upload_document(client, headers, member_id, title="Newer", description="front and back")
    assert newer["description"] == "front and back"
    assert newer["file_name"] == "card.pdf"

    response = await client.get(f"/api/v1/health/documents/{member_id}", headers=headers)
    assert response.status_code == 200
    documents = response.json()
    assert isinstance(documents, list)
    assert [d["id"] for d in documents] == [newer["id"], older["id"]]
    assert len(list(upload_dir.iterdir())) == 2


@pytest.mark.asyncio
async def test_upload_document_requires_title(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)

    response = await client.post(
        f"/api/v1/health/documents/{member_id}", files=pdf_file(), headers=headers
    )
    assert response.status_code == 422

    response = await client.post(
        f"/api/v1/health/documents/{member_id}",
        data={"title": "   "},
        files=pdf_file(),
        headers=headers,
    )
    assert response.status_code == 422
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_documents_other_family(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    other_headers, _ = await auth_headers(client, email="other@example.com")
    other_member = await own_member_id(client, other_headers)

    listing = await client.get(f"/api/v1/health/documents/{other_member}", headers=headers)
    assert listing.status_code == 403

    upload = await client.post(
        f"/api/v1/health/documents/{other_member}",
        data={"title": "Sneaky"},
        files=pdf_file(),
        headers=headers,
    )
    assert upload.status_code == 403
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_family_members_share_document_access(client: AsyncClient):
    headers, _ = await auth_headers(client)
    admin_member = await own_member_id(client, headers)
    document = await upload_document(client, headers, admin_member)
    await add_member(client, headers, name="Kid", email="kid@example.com", password=PASSWORD)
    kid_headers = await login_headers(client, "kid@example.com")

    listing = await client.get(f"/api/v1/health/documents/{admin_member}", headers=kid_headers)
    assert listing.status_code == 200
    assert listing.json()[0]["id"] == document["id"]


@pytest.mark.asyncio
async def test_download_document(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)
    document = await upload_document(client, headers, member_id)

    response = await client.get(f"/api/v1/health/documents/file/{document['id']}", headers=headers)
    assert response.status_code == 200
    assert response.content == PDF_BYTES
    assert "card.pdf" in response.headers["content-disposition"]

    other_headers, _ = await auth_headers(client, email="other@example.com")
    foreign = await client.get(f"/api/v1/health/documents/file/{document['id']}", headers=other_headers)
    assert foreign.status_code == 404

    (upload_dir / document["file_path"]).unlink()
    gone = await client.get(f"/api/v1/health/documents/file/{document['id']}", headers=headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_update_document_metadata(client: AsyncClient):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)
    document = await upload_document(client, headers, member_id)

    response = await client.put(
        f"/api/v1/health/documents/{document['id']}",
        data={"title": "Updated card", "uploadDate": "2022-12-31"},
        headers=headers,
    )
    assert response.status_code == 200
    updated = response.json()["document"]
    assert updated["title"] == "Updated card"
    assert updated["upload_date"].startswith("2022-12-31")
    assert updated["file_path"] == document["file_path"]

    empty = await client.put(f"/api/v1/health/documents/{document['id']}", data={}, headers=headers)
    assert empty.status_code == 400

    missing = await client.put(f"/api/v1/health/documents/{uuid4()}", data={"title": "x"}, headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_update_document_replaces_file(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)
    document = await upload_document(client, headers, member_id)

    new_content = PDF_BYTES + b"% rescanned\n"
    response = await client.put(
        f"/api/v1/health/documents/{document['id']}",
        files={"file": ("rescan.pdf", new_content, "application/pdf")},
        headers=headers,
    )
    assert response.status_code == 200
    updated = response.json()["document"]
    assert updated["file_name"] == "rescan.pdf"
    assert updated["title"] == "Insurance card"

    assert [p.name for p in upload_dir.iterdir()] == [updated["file_path"]]
    assert (upload_dir / updated["file_path"]).read_bytes() == new_content


@pytest.mark.asyncio
async def test_update_document_rejects_non_pdf_and_keeps_original(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)
    document = await upload_document(client, headers, member_id)

    response = await client.put(
        f"/api/v1/health/documents/{document['id']}",
        files={"file": ("photo.png", b"\x89PNG", "image/png")},
        headers=headers,
    )
    assert response.status_code == 400
    assert [p.name for p in upload_dir.iterdir()] == [document["file_path"]]


@pytest.mark.asyncio
async def test_delete_document(client: AsyncClient, upload_dir):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)
    document = await upload_document(client, headers, member_id)
    await add_member(client, headers, name="Kid", email="kid@example.com", password=PASSWORD)
    kid_headers = await login_headers(client, "kid@example.com")

    forbidden = await client.delete(f"/api/v1/health/documents/{document['id']}", headers=kid_headers)
    assert forbidden.status_code == 403

    response = await client.delete(f"/api/v1/health/documents/{document['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Document deleted successfully"
    assert list(upload_dir.iterdir()) == []

    again = await client.delete(f"/api/v1/health/documents/{document['id']}", headers=headers)
    assert again.status_code == 404
