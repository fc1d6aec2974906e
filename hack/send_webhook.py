"""Webhook 送信スクリプト。

HTTP POST で /webhooks/{platform}/{mapping_id} に GroupMe 形式のメッセージを
送信する開発・テスト用スクリプト。
"""

import argparse
import http.client
import json
import sys
import time
import uuid


def create_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを作成する。"""
    parser = argparse.ArgumentParser(
        description="GroupMe 形式の webhook をサーバーに送信する",
    )
    parser.add_argument("mapping_id", help="送信先のマッピング ID")
    parser.add_argument("group_id", help="マッピングに紐づく外部グループ ID")
    parser.add_argument(
        "-H",
        "--host",
        default="localhost",
        help="サーバーホスト (デフォルト: localhost)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8080,
        help="サーバーポート (デフォルト: 8080)",
    )
    parser.add_argument(
        "-t",
        "--text",
        default="Hello from GroupMe",
        help="メッセージ本文 (デフォルト: Hello from GroupMe)",
    )
    parser.add_argument(
        "-s",
        "--sender",
        default="Field Responder",
        help="送信者名 (デフォルト: Field Responder)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=1,
        help="送信回数 (デフォルト: 1)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=0.0,
        help="送信間隔（秒） (デフォルト: 0.0)",
    )
    parser.add_argument(
        "--duplicate",
        action="store_true",
        help="同じメッセージ ID で送信する（重複排除の確認用）",
    )
    return parser


def build_payload(group_id: str, sender: str, text: str, message_id: str) -> dict:
    """GroupMe のコールバック形式のペイロードを作成する。"""
    return {
        "id": message_id,
        "group_id": group_id,
        "user_id": "local-user",
        "name": sender,
        "text": text,
        "created_at": int(time.time()),
        "sender_type": "user",
        "attachments": [],
    }


def send_webhook(
    host: str, port: int, mapping_id: str, payload: dict
) -> tuple[bool, str]:
    """Webhook を送信する。

    Args:
        host: サーバーホスト
        port: サーバーポート
        mapping_id: マッピング ID
        payload: 送信するペイロード

    Returns:
        (成功フラグ, メッセージ) のタプル
    """
    try:
        conn = http.client.HTTPConnection(host, port, timeout=30)
        try:
            conn.request(
                "POST",
                f"/webhooks/groupme/{mapping_id}",
                body=json.dumps(payload),
                headers={"Content-Type": "application/json"},
            )
            response = conn.getresponse()
            body = response.read().decode("utf-8")

            if response.status == 200:
                try:
                    data = json.loads(body)
                    return True, data.get("delivery_id", data.get("status", "unknown"))
                except json.JSONDecodeError:
                    return False, f"Invalid JSON response: {body}"
            else:
                return False, f"{response.status} {response.reason}: {body}"
        finally:
            conn.close()
    except ConnectionRefusedError:
        return False, "Connection refused"
    except TimeoutError:
        return False, "Connection timeout"
    except OSError as e:
        return False, str(e)


def main() -> int:
    """メインエントリーポイント。"""
    parser = create_parser()
    args = parser.parse_args()

    url = f"http://{args.host}:{args.port}/webhooks/groupme/{args.mapping_id}"
    print(f"Sending webhook to {url}...")

    fixed_id = str(uuid.uuid4())
    for i in range(args.count):
        if i > 0 and args.interval > 0:
            time.sleep(args.interval)

        message_id = fixed_id if args.duplicate else str(uuid.uuid4())
        payload = build_payload(args.group_id, args.sender, args.text, message_id)
        success, message = send_webhook(args.host, args.port, args.mapping_id, payload)

        if success:
            print(f"[{i + 1}/{args.count}] Delivery: {message} (message id: {message_id})")
        else:
            print(f"Error: {message}")
            return 1

    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
