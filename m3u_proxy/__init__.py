"""
m3u-proxy: rebuild filtered IPTV playlists and matching XMLTV guides
"""
__version__ = "0.1.0"
