#!/usr/bin/env python3
"""
Manual helper for poking a running backend.

Usage:
    # Post a reading as the patient (may trigger heart-rate alerts)
    python scripts/send_heart_rate.py send --token <jwt> --value 150

    # Show what is active right now for a patient
    python scripts/send_heart_rate.py active --token <jwt> --patient-id <patient_id>

    # Follow the live heart-rate stream
    python scripts/send_heart_rate.py watch --token <jwt> --patient-id <patient_id>
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import typer
import websockets

app = typer.Typer()

BASE_URL = "http://localhost:8000"
API = f"{BASE_URL}/api/v1"


@app.command()
def send(
    token: str = typer.Option(..., help="Bearer token of the patient account"),
    value: float = typer.Option(..., help="Heart rate in bpm"),
    source: str = typer.Option("bluetooth", help="bluetooth or api"),
):
    """Record one heart-rate reading."""
    asyncio.run(_send(token, value, source))


async def _send(token: str, value: float, source: str) -> None:
    payload = {
        "heartRate": value,
        "source": source,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{API}/heart-rate", headers={"Authorization": f"Bearer {token}"}, json=payload
        )
    if response.status_code != 201:
        typer.echo(f"Failed: {response.status_code} {response.text}", err=True)
        raise typer.Exit(1)
    body = response.json()
    typer.echo(f"Stored {body['reading']['heartRate']} bpm, newly triggered alerts: {body['newlyTriggered']}")


@app.command()
def active(
    token: str = typer.Option(..., help="Bearer token"),
    patient_id: str = typer.Option(None, help="Patient ID; defaults to the caller's patient"),
):
    """Evaluate the patient's alerts now and print the active ones."""
    asyncio.run(_active(token, patient_id))


async def _active(token: str, patient_id: str | None) -> None:
    params = {"patient_id": patient_id} if patient_id else {}
    async with httpx.AsyncClient(timeout=60) as client:
        response = await client.get(
            f"{API}/alerts/active", headers={"Authorization": f"Bearer {token}"}, params=params
        )
    if response.status_code != 200:
        typer.echo(f"Failed: {response.status_code} {response.text}", err=True)
        raise typer.Exit(1)
    records = response.json()
    if not records:
        typer.echo("No active alerts")
    for record in records:
        alert = record["alert"]
        typer.echo(
            f"[{alert['priority']}] {alert['name']}: {alert['metricPath']} "
            f"{alert['operator']} {alert['thresholdValue']} (current {record['currentValue']})"
        )


@app.command()
def watch(
    token: str = typer.Option(..., help="Bearer token"),
    patient_id: str = typer.Option(..., help="Patient ID to follow"),
):
    """Print live heart-rate readings until interrupted."""
    try:
        asyncio.run(_watch(token, patient_id))
    except KeyboardInterrupt:
        typer.echo("Disconnected")


async def _watch(token: str, patient_id: str) -> None:
    url = f"{API.replace('http', 'ws', 1)}/heart-rate/ws?token={token}&patient_id={patient_id}"
    async with websockets.connect(url) as socket:
        typer.echo(f"Connected to {patient_id}, waiting for readings")
        async for raw in socket:
            message = json.loads(raw)
            typer.echo(f"{message['timestamp']}  {message['heartRate']} bpm ({message['source']})")


if __name__ == "__main__":
    app()
