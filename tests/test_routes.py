import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeSolutionGenerator, fake_services, png_bytes, png_data_url
from dal.board_dal import BoardDAL
from routes.ai_route import router as ai_router
from routes.board_route import router as board_router
from services.errors import BackendError
from services.openai.clients import AIServices
from services.openai.solution_generator import SolutionGenerator
from utils.database_init import AsyncDatabaseInitializer


def ai_client(services: AIServices) -> TestClient:
    app = FastAPI()
    app.include_router(ai_router)
    app.state.ai_services = services
    return TestClient(app)


@pytest.fixture
def board_client(db_dir):
    app = FastAPI()
    app.include_router(board_router)
    app.state.db_initializer = AsyncDatabaseInitializer(db_dir)
    return TestClient(app)


def test_ocr_requires_an_image():
    response = ai_client(fake_services()).post("/api/ocr", json={})

    assert response.status_code == 400
    assert response.json()["detail"] == "No image provided"


def test_ocr_returns_text():
    response = ai_client(fake_services()).post("/api/ocr", json={"image": png_data_url()})

    assert response.status_code == 200
    assert response.json() == {"success": True, "text": "2x + 3 = 7"}


def test_check_help_needed_needs_text_or_image():
    client = ai_client(fake_services())

    assert client.post("/api/check-help-needed", json={}).status_code == 400
    response = client.post("/api/check-help-needed", json={"text": "x + 1 = "})
    assert response.json() == {"success": True, "needsHelp": True, "confidence": 0.9, "reason": "stuck"}


def test_generate_solution_returns_image_or_text_only_result():
    image = png_data_url()
    drawn = ai_client(fake_services()).post("/api/generate-solution", json={"image": image, "mode": "answer"})
    declined = ai_client(fake_services(solution_generator=FakeSolutionGenerator().declines("Correct."))).post(
        "/api/generate-solution", json={"image": image}
    )

    assert drawn.status_code == 200
    assert drawn.json()["success"] is True
    assert drawn.json()["imageUrl"].startswith("data:image/png;base64,")
    assert declined.status_code == 200
    assert declined.json()["success"] is False
    assert declined.json()["imageUrl"] is None
    assert declined.json()["textContent"] == "Correct."


def test_generate_solution_without_key_is_a_server_error():
    services = fake_services(solution_generator=SolutionGenerator(None))

    response = ai_client(services).post("/api/generate-solution", json={"image": png_data_url()})

    assert response.status_code == 500
    assert response.json()["detail"] == "OPENROUTER_API_KEY not configured"


def test_backend_failure_is_a_server_error():
    services = fake_services(solution_generator=FakeSolutionGenerator(error=BackendError("upstream 503")))

    response = ai_client(services).post("/api/generate-solution", json={"image": png_data_url()})

    assert response.status_code == 500
    assert "upstream 503" in response.json()["detail"]


def test_analyze_workspace_and_voice_token():
    client = ai_client(fake_services())

    analysis = client.post("/api/voice/analyze-workspace", json={"image": png_data_url(), "focus": "step 2"})
    token_get = client.get("/api/voice/token")
    token_post = client.post("/api/voice/token")

    assert analysis.json() == {"success": True, "analysis": "The user is solving a linear equation."}
    assert token_get.json() == {"client_secret": "ek_test"}
    assert token_post.json() == {"client_secret": "ek_test"}


def test_board_lifecycle(board_client):
    created = board_client.post("/boards", json={"title": "Physics"}).json()
    board_id = created["id"]

    assert board_client.get("/boards", params={"q": "phys"}).json()[0]["id"] == board_id
    assert board_client.get(f"/boards/{board_id}").json()["data"] is None
    assert board_client.get(f"/boards/{board_id}/preview").status_code == 404

    snapshot = {"version": 1, "shapes": [], "assets": []}
    assert board_client.put(f"/boards/{board_id}/snapshot", json={"snapshot": snapshot}).json()["saved"] is True
    assert board_client.get(f"/boards/{board_id}").json()["data"] == snapshot

    renamed = board_client.patch(f"/boards/{board_id}", json={"title": "Physics 2"})
    assert renamed.json()["title"] == "Physics 2"
    assert board_client.patch(f"/boards/{board_id}", json={"title": " "}).status_code == 400

    assert board_client.delete(f"/boards/{board_id}").json()["deleted"] is True
    assert board_client.get(f"/boards/{board_id}").status_code == 404
    assert board_client.delete(f"/boards/{board_id}").status_code == 404


def test_preview_is_served_as_png(board_client):
    board_id = board_client.post("/boards", json={}).json()["id"]
    preview = png_bytes(4, 4)
    asyncio.run(BoardDAL(board_client.app.state.db_initializer).update_board(board_id, preview=preview))

    response = board_client.get(f"/boards/{board_id}/preview")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content == preview
