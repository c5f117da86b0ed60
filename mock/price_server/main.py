from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Price Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/price_stub") if os.path.exists("/price_stub") else Path(__file__).resolve().parents[2] / "price_stub"


def load_prices() -> dict:
    return json.loads((DATA_DIR / "prices.json").read_text())


@app.get("/health")
def health(): return {"status": "ok"}


@app.get("/mf/{scheme_code}")
def mutual_fund_nav(scheme_code: str):
    fund = load_prices()["mutual_funds"].get(scheme_code)
    if fund is None:
        raise HTTPException(status_code=404, detail="scheme not found")
    return JSONResponse(content={
        "meta": {"scheme_code": scheme_code, "scheme_name": fund["scheme_name"]},
        "data": [{"date": "17-10-2026", "nav": fund["nav"]}],
    })


@app.get("/v8/finance/chart/{ticker}")
def equity_chart(ticker: str, interval: str = "1d", range: str = "1d"):
    quote = load_prices()["equities"].get(ticker)
    if quote is None:
        return JSONResponse(status_code=404, content={"chart": {"result": None, "error": {"code": "Not Found"}}})
    return JSONResponse(content={
        "chart": {
            "result": [{"meta": {"symbol": ticker, "currency": quote["currency"], "regularMarketPrice": quote["price"]}}],
            "error": None,
        }
    })


@app.get("/api/v3/simple/price")
def crypto_price(ids: str = Query(...), vs_currencies: str = Query(...)):
    crypto = load_prices()["crypto"]
    payload = {}
    for coin in ids.split(","):
        if coin in crypto:
            payload[coin] = {vs: crypto[coin][vs] for vs in vs_currencies.split(",") if vs in crypto[coin]}
    return JSONResponse(content=payload)


@app.get("/v6/latest/{base}")
def fx_latest(base: str):
    rates = load_prices()["fx"].get(base.upper())
    if rates is None:
        return JSONResponse(content={"result": "error", "error-type": "unsupported-code"})
    return JSONResponse(content={"result": "success", "base_code": base.upper(), "rates": rates})
