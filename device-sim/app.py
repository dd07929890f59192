
import os
import random
import ssl
import time
import urllib.parse
from typing import Optional

import paho.mqtt.client as mqtt
from dotenv import load_dotenv

# -----------------------------
# Load environment (optional)
# -----------------------------
load_dotenv()

# -----------------------------
# CONFIG: fill these or use .env
# -----------------------------
MQTT_HOST = os.getenv("THINGSPEAK_MQTT_HOST", "mqtt3.thingspeak.com")
CHANNEL_ID = os.getenv("THINGSPEAK_CHANNEL_ID")
# ThingSpeak MQTT devices authenticate with their own client id / username / password triple
MQTT_CLIENT_ID = os.getenv("THINGSPEAK_MQTT_CLIENT_ID")
MQTT_USERNAME = os.getenv("THINGSPEAK_MQTT_USERNAME")
MQTT_PASSWORD = os.getenv("THINGSPEAK_MQTT_PASSWORD")
USE_WEBSOCKETS = os.getenv("USE_WEBSOCKETS", "true").lower() == "true"
# free ThingSpeak channels accept one update every 15 s
SEND_INTERVAL_SECONDS = int(os.getenv("SEND_INTERVAL_SECONDS", "20"))
# share of readings replaced by a non-numeric value, to exercise sensor dropout handling
DROPOUT_RATE = float(os.getenv("DROPOUT_RATE", "0"))


# -----------------------------
# Helpers
# -----------------------------
def publish_topic(channel_id: str) -> str:
    return f"channels/{channel_id}/publish"


def build_payload(rng: Optional[random.Random] = None, dropout_rate: float = 0.0) -> dict:
    """
    One sample: field1 = temperature (°C), field2 = humidity (%).
    With probability dropout_rate a field is sent as "nan", like a sensor that failed a read.
    """
    rng = rng or random
    temperature = round(24 + rng.uniform(-10, 10), 2)
    humidity = round(50 + rng.uniform(-25, 30), 2)
    fields = {"field1": str(temperature), "field2": str(humidity)}
    for name in fields:
        if dropout_rate and rng.random() < dropout_rate:
            fields[name] = "nan"
    return fields


def encode_payload(fields: dict) -> str:
    # ThingSpeak expects form-encoded fields; status tags the publish source
    return urllib.parse.urlencode({**fields, "status": "MQTTPUBLISH"})


def safe_publish(client: mqtt.Client, topic: str, payload: str, qos: int = 0, retries: int = 5) -> bool:
    """
    Publish with simple reconnect-aware retries.
    When the client is reconnecting, publish() will often return rc=4 (MQTT_ERR_NO_CONN).
    """
    for attempt in range(retries):
        if client.is_connected():
            r = client.publish(topic, payload=payload, qos=qos)
            if r.rc == mqtt.MQTT_ERR_SUCCESS:
                return True
        # allow time for automatic reconnect to happen
        time.sleep(1 + attempt)  # linear backoff
    print("[warn] publish failed after retries")
    return False


# -----------------------------
# MQTT callbacks (Callback API v2)
# -----------------------------
def on_connect(client: mqtt.Client, userdata, flags, reason_code, properties=None):
    print(f"[connect] reason_code={reason_code}")  # 0 means success
    if reason_code != 0:
        print("[error] not connected. Check the MQTT device credentials and channel access.")


def on_disconnect(client: mqtt.Client, userdata, flags, reason_code, properties=None):
    print(f"[disconnect] reason_code={reason_code} (0 means clean; non-zero unexpected)")


# -----------------------------
# Main
# -----------------------------
def main():
    if not (CHANNEL_ID and MQTT_CLIENT_ID and MQTT_USERNAME and MQTT_PASSWORD):
        raise RuntimeError("ThingSpeak channel or MQTT device credentials are not set. Put them in .env.")

    transport = "websockets" if USE_WEBSOCKETS else "tcp"
    port = 443 if USE_WEBSOCKETS else 8883

    client = mqtt.Client(
        client_id=MQTT_CLIENT_ID,
        transport=transport,
        protocol=mqtt.MQTTv311,
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
    )
    client.username_pw_set(username=MQTT_USERNAME, password=MQTT_PASSWORD)
    client.tls_set(tls_version=ssl.PROTOCOL_TLSv1_2)
    client.tls_insecure_set(False)

    client.on_connect = on_connect
    client.on_disconnect = on_disconnect
    client.reconnect_delay_set(min_delay=1, max_delay=8)

    print(f"[info] connecting to {MQTT_HOST}:{port}  transport={transport}")
    client.connect(MQTT_HOST, port=port, keepalive=60)
    client.loop_start()

    topic = publish_topic(CHANNEL_ID)

    try:
        while True:
            payload = encode_payload(build_payload(dropout_rate=DROPOUT_RATE))
            ok = safe_publish(client, topic, payload)
            rc_txt = "ok" if ok else "fail"
            print(f"[publish:{rc_txt}] topic={topic} payload={payload}")
            time.sleep(SEND_INTERVAL_SECONDS)
    except KeyboardInterrupt:
        print("Exiting...")
    finally:
        client.loop_stop()
        client.disconnect()


if __name__ == "__main__":
    main()
