import os
import json
import logging
from datetime import datetime, timezone

from flask import Flask, request, jsonify, redirect, url_for, Response
from flask_cors import CORS

from downloader import TikTokDownloader, MediaKind
from errors import DownloaderError, DownloadFailedError

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

downloader = TikTokDownloader()

UNAVAILABLE_MESSAGE = 'Service temporarily unavailable. Please try again.'


@app.route('/')
def index():
    return jsonify({'message': 'TikTok download relay running'})


# Endpoint 1: Resolve a TikTok URL into media metadata. Errors are reported in-band.
@app.route('/api/download', methods=['POST'])
def download_info():
    data = request.get_json(silent=True) or {}
    url = data.get('url') if isinstance(data, dict) else None

    try:
        result = downloader.download(url)
        return jsonify(result.to_dict())
    except DownloaderError as e:
        logger.error(f"Download error: {str(e)}")
        return jsonify({'success': False, 'error': str(e)})
    except Exception:
        logger.exception("Unexpected error while resolving URL")
        return jsonify({'success': False, 'error': UNAVAILABLE_MESSAGE})


# Endpoint 2: Proxy media bytes as an attachment
@app.route('/api/direct-download', methods=['GET'])
def direct_download():
    url = request.args.get('url')
    if not url:
        return jsonify({'error': 'Media URL is required'}), 400

    kind = MediaKind.from_param(request.args.get('type'))
    try:
        stream = downloader.stream_media(
            url,
            kind,
            display_name=request.args.get('filename'),
            quality=request.args.get('quality'),
        )
    except DownloadFailedError as e:
        logger.error(f"Direct download error: {str(e)}")
        return jsonify({'error': str(e)}), 500

    try:
        response = Response(stream.iter_content(), headers=stream.headers)
    except ValueError as e:
        stream.close()
        logger.error(f"Direct download error: {str(e)}")
        return jsonify({'error': 'Download failed: invalid response headers'}), 500
    response.call_on_close(stream.close)
    return response


# Endpoint 3: Photo posts, hand the first image to the direct download endpoint
@app.route('/api/download-all-images', methods=['GET'])
def download_all_images():
    urls = request.args.get('urls')
    if not urls:
        return jsonify({'error': 'Image URLs are required'}), 400

    try:
        image_urls = json.loads(urls)
    except ValueError:
        return jsonify({'error': 'Image URLs must be a JSON array'}), 400
    if not isinstance(image_urls, list) or not all(isinstance(u, str) for u in image_urls):
        return jsonify({'error': 'Image URLs must be a JSON array'}), 400
    if not image_urls:
        return jsonify({'error': 'No images found'}), 400

    return redirect(url_for(
        'direct_download',
        url=image_urls[0],
        type='image',
        filename=request.args.get('filename') or 'tiktok-images',
    ))


@app.route('/health')
def health():
    timestamp = datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
    return jsonify({'status': 'OK', 'timestamp': timestamp})


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 3000)), threaded=True)
