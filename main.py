from flask import Flask, request, jsonify
from flask_cors import CORS
from settlement_engine import SettlementEngine
import os
import logging

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (the back-office UI calls the API from another origin)
CORS(app)

# Initialize the settlement engine
engine = SettlementEngine()


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Commission & Settlement Engine API",
        "version": "1.0",
        "endpoints": {
            "compute_settlement": "/settlements/compute [POST]",
            "open_settlement": "/settlements/open [POST]",
            "settlement_report": "/settlements/report [POST]",
            "simulate": "/simulate [POST]",
            "health": "/health [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


def _run(operation, label):
    """Run an engine operation on the JSON body and map errors to responses."""
    try:
        input_data = request.get_json(force=True, silent=True)

        if not input_data:
            return jsonify({
                "error": "No input data provided",
                "status": "failed"
            }), 400

        logger.info(f"Processing {label}")
        result = operation(input_data)
        logger.info(f"{label} processed successfully")

        return jsonify(result), 200

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine
        logger.error(f"Validation error: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "validation_failed"
        }), 400

    except Exception as e:
        # Unexpected errors
        logger.error(f"Processing error: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "failed"
        }), 500


@app.route("/settlements/compute", methods=["POST"])
def compute_settlement():
    """Compute totals, breakdown and cache values for one settlement record"""
    return _run(engine.compute_settlement_from_dict, "settlement")


@app.route("/settlements/open", methods=["POST"])
def open_settlement():
    """Open a draft settlement for the table group in force"""
    return _run(engine.open_settlement_from_dict, "settlement opening")


@app.route("/settlements/report", methods=["POST"])
def settlement_report():
    """Aggregate settlement records by counterparty and period"""
    return _run(engine.build_report_from_dict, "settlement report")


@app.route("/simulate", methods=["POST"])
def simulate():
    """Rank counterparties by simulated earning for an amount"""
    return _run(engine.simulate_from_dict, "simulation")


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
